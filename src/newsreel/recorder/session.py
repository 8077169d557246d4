#!/usr/bin/env python3
"""
Recording Session - drives a presentation through its controls, records it, and
publishes the result.

generate → wait for ready → play → wait for the end → snapshot → stop capture →
collect the captured audio → composite → upload snapshot (soft) and video (hard) →
clean up → webhook. The whole session is bounded by one timeout.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from newsreel.playback.controls import GENERATE_STORY, PLAY_PREVIEW, PresentationControls
from newsreel.playback.view import FrameRenderer
from newsreel.shared.types.errors import MediaToolError, UploadError
from newsreel.shared.types.results import PlaybackResult
from newsreel.shared.utils.logging_config import log_error, log_step, log_warning

from .media import composite, write_audio_payload
from .screen import ScreenCapture
from .uploader import CloudinaryUploader, WebhookNotifier, build_description

logger = logging.getLogger(__name__)

Compositor = Callable[[Path, Path, Path], Awaitable[Path]]


@dataclass
class RecordingConfig:
    """Output location, frame rate and the waits of the recording flow (seconds)."""
    output_dir: str = "output"
    fps: int = 24
    ffmpeg_binary: str = "ffmpeg"
    generate_button_timeout: float = 60.0
    ready_timeout: float = 300.0
    start_timeout: float = 10.0
    playback_timeout: float = 180.0
    pre_play_pause: float = 1.0
    final_settle: float = 3.0
    session_timeout: float = 600.0
    result_timeout: float = 10.0
    poll_interval: float = 0.25
    keep_local_files: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'RecordingConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


@dataclass
class SessionResult:
    video_url: str
    image_url: Optional[str]
    description: str
    playback: PlaybackResult


class RecordingSession:
    """One end-to-end recording and publishing run."""

    def __init__(self, controls: PresentationControls, renderer: FrameRenderer,
                 uploader: CloudinaryUploader, notifier: Optional[WebhookNotifier] = None,
                 config: Optional[RecordingConfig] = None,
                 capture: Optional[ScreenCapture] = None,
                 compositor: Optional[Compositor] = None):
        self.controls = controls
        self.sequencer = controls.sequencer
        self.renderer = renderer
        self.uploader = uploader
        self.notifier = notifier
        self.config = config or RecordingConfig()
        self.output_dir = Path(self.config.output_dir)
        self.stamp = str(int(time.time() * 1000))
        self.capture = capture or ScreenCapture(
            renderer, self.output_dir / f"capture-{self.stamp}.mp4",
            fps=self.config.fps, ffmpeg_binary=self.config.ffmpeg_binary)
        self._compositor = compositor or self._default_compositor

    async def _default_compositor(self, video: Path, audio: Path, output: Path) -> Path:
        return await composite(video, audio, output, self.config.ffmpeg_binary)

    async def run(self) -> SessionResult:
        """Run the session under the overall timeout."""
        try:
            return await asyncio.wait_for(self._run(), timeout=self.config.session_timeout)
        except asyncio.TimeoutError:
            log_error(logger, f"Recording session timed out after {self.config.session_timeout / 60:.0f} minutes")
            raise

    async def _drive(self) -> Path:
        """Generate and play through the controls; returns the final snapshot."""
        config = self.config
        logger.info('Waiting for "Generate Story" button...')
        await self.controls.wait_for(GENERATE_STORY, "visible", config.generate_button_timeout)
        logger.info("Clicking button to start generation...")
        self.controls.click(GENERATE_STORY)

        logger.info("Waiting for generation to complete... This may take several minutes.")
        await self.controls.wait_for(PLAY_PREVIEW, "visible", config.ready_timeout)
        log_step(logger, "Generation complete", '"Play Preview" is visible')
        await asyncio.sleep(config.pre_play_pause)

        logger.info('Clicking "Play Preview"...')
        self.controls.click(PLAY_PREVIEW)
        await self.controls.wait_for(PLAY_PREVIEW, "disabled", config.start_timeout)
        logger.info("Playback in progress...")
        await self.controls.wait_for(PLAY_PREVIEW, "hidden", config.playback_timeout)
        log_step(logger, "Playback finished")

        await asyncio.sleep(config.final_settle)
        snapshot = self.renderer.snapshot(self.output_dir / f"final-view-{self.stamp}.png")
        logger.info(f"Local screenshot saved: {snapshot}")
        return snapshot

    async def _run(self) -> SessionResult:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        await self.capture.start()
        try:
            snapshot = await self._drive()
        except BaseException:
            try:
                await self.capture.stop()
            except MediaToolError as e:
                log_warning(logger, f"Screen capture did not close cleanly: {e}")
            raise
        video = await self.capture.stop()

        playback = await self.sequencer.output_slot.observe(timeout=self.config.result_timeout)
        final_video = await self._attach_audio(video, playback)

        image_url = await self._upload_snapshot(snapshot)
        try:
            video_url = await self.uploader.upload(final_video, resource_type="video")
        finally:
            await self.uploader.close()
        log_step(logger, "Video uploaded", video_url)
        self._cleanup(final_video, video)

        description = build_description(playback.news, playback.hashtags_en, playback.hashtags_bn)
        if self.notifier is not None:
            await self.notifier.notify(video_url, image_url, description)

        return SessionResult(video_url=video_url, image_url=image_url,
                             description=description, playback=playback)

    async def _attach_audio(self, video: Path, playback: PlaybackResult) -> Path:
        if not playback.has_audio:
            log_warning(logger, "No captured audio available; uploading the silent recording")
            return video
        audio = write_audio_payload(playback.audio_base64, self.output_dir,
                                    f"audio-{self.stamp}", playback.audio_mime or "audio/wav")
        output = self.output_dir / f"final-{self.stamp}.mp4"
        try:
            return await self._compositor(video, audio, output)
        finally:
            if not self.config.keep_local_files:
                audio.unlink(missing_ok=True)

    async def _upload_snapshot(self, snapshot: Path) -> Optional[str]:
        try:
            url = await self.uploader.upload(snapshot, resource_type="image")
        except UploadError as e:
            log_warning(logger, f"Screenshot upload failed: {e}")
            return None
        if not self.config.keep_local_files:
            snapshot.unlink(missing_ok=True)
        return url

    def _cleanup(self, *paths: Path) -> None:
        if self.config.keep_local_files:
            return
        for path in set(paths):
            Path(path).unlink(missing_ok=True)
            logger.debug(f"Deleted local file {path}")
