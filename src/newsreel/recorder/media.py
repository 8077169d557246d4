#!/usr/bin/env python3
"""
Media tools - audio payload decoding and ffmpeg compositing.
"""

import asyncio
import base64
import logging
from pathlib import Path
from typing import List

from newsreel.shared.types.errors import MediaToolError

logger = logging.getLogger(__name__)

MIME_EXTENSIONS = {
    "audio/wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
}


def write_audio_payload(audio_base64: str, directory: Path, stem: str, mime: str = "audio/wav") -> Path:
    """Decode the captured audio payload into a file next to the video."""
    path = Path(directory) / f"{stem}{MIME_EXTENSIONS.get(mime, '.bin')}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(base64.b64decode(audio_base64))
    return path


def composite_command(ffmpeg_binary: str, video: Path, audio: Path, output: Path) -> List[str]:
    return [
        ffmpeg_binary, "-y",
        "-loglevel", "error",
        "-i", str(video),
        "-i", str(audio),
        "-c:v", "copy",
        "-c:a", "aac",
        "-shortest",
        str(output)
    ]


async def composite(video: Path, audio: Path, output: Path, ffmpeg_binary: str = "ffmpeg") -> Path:
    """Mux the recorded video with the captured audio; raises MediaToolError on failure."""
    command = composite_command(ffmpeg_binary, video, audio, output)
    logger.debug(f"Running: {' '.join(command)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE
        )
    except FileNotFoundError:
        raise MediaToolError(f"{ffmpeg_binary} not found; it is required to composite the video")

    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise MediaToolError(f"ffmpeg composite failed ({proc.returncode}): "
                             f"{stderr.decode(errors='replace')[-300:]}")
    if not Path(output).is_file():
        raise MediaToolError(f"ffmpeg reported success but {output} was not written")
    logger.info(f"Composite written: {output}")
    return Path(output)
