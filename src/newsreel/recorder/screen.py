#!/usr/bin/env python3
"""
Screen Capture - samples the player view at a fixed frame rate and pipes raw RGB
frames into ffmpeg, which encodes them to H.264.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from newsreel.playback.view import FrameRenderer
from newsreel.shared.types.errors import MediaToolError

logger = logging.getLogger(__name__)


def encoder_command(ffmpeg_binary: str, width: int, height: int, fps: int, output: Path) -> List[str]:
    return [
        ffmpeg_binary, "-y",
        "-loglevel", "error",
        "-f", "rawvideo",
        "-vcodec", "rawvideo",
        "-s", f"{width}x{height}",
        "-pix_fmt", "rgb24",
        "-r", str(fps),
        "-i", "-",
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-preset", "veryfast",
        "-crf", "23",
        str(output)
    ]


class ScreenCapture:
    """Records the renderer's frames to a video file while running."""

    def __init__(self, renderer: FrameRenderer, output_path: Path, fps: int = 24,
                 ffmpeg_binary: str = "ffmpeg"):
        self.renderer = renderer
        self.output_path = Path(output_path)
        self.fps = fps
        self.ffmpeg_binary = ffmpeg_binary
        self.frames_written = 0
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        width, height = self.renderer.size
        command = encoder_command(self.ffmpeg_binary, width, height, self.fps, self.output_path)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            raise MediaToolError(f"{self.ffmpeg_binary} not found; it is required for screen capture")
        self._task = asyncio.create_task(self._capture_loop(), name="screen-capture")
        logger.info(f"Screen capture started → {self.output_path} ({width}x{height} @ {self.fps}fps)")

    async def _capture_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = 1.0 / self.fps
        deadline = loop.time()
        while True:
            frame = self.renderer.render()
            self._proc.stdin.write(frame.tobytes())
            await self._proc.stdin.drain()
            self.frames_written += 1
            deadline += interval
            # Drop frames rather than drift when rendering falls behind
            while deadline < loop.time():
                deadline += interval
            await asyncio.sleep(deadline - loop.time())

    async def stop(self) -> Path:
        """Stop sampling, let ffmpeg finish the file, and return its path."""
        if self._proc is None:
            raise MediaToolError("Screen capture was never started")

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.warning(f"Encoder closed its input early: {e}")
            self._task = None

        if self._proc.stdin and not self._proc.stdin.is_closing():
            self._proc.stdin.close()
        stderr = await self._proc.stderr.read() if self._proc.stderr else b''
        returncode = await self._proc.wait()
        self._proc = None

        if returncode != 0:
            raise MediaToolError(f"ffmpeg exited with {returncode}: {stderr.decode(errors='replace')[-300:]}")
        logger.info(f"Screen capture saved: {self.output_path} ({self.frames_written} frames)")
        return self.output_path
