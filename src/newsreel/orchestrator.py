#!/usr/bin/env python3
"""
newsreel Orchestrator
Wires: Article Source → Curation → Narration → Preload → Playback → (Recording/Upload)
"""

import argparse
import asyncio
import json
import logging
import sys
import time
import traceback
from pathlib import Path
from typing import List, Optional

from rich.table import Table

from newsreel.collectors.collectors import NewsdataCollector
from newsreel.collectors.core import CollectionConfig
from newsreel.playback.audio import AudioConfig
from newsreel.playback.console import render_console
from newsreel.playback.controls import PresentationControls
from newsreel.playback.sequencer import PlaybackSequencer, default_engine_factory
from newsreel.playback.state import PlaybackTimings
from newsreel.playback.view import FrameRenderer, ViewConfig
from newsreel.processors.curation_agent import CurationAgent, CurationConfig
from newsreel.processors.narration_agent import NarrationAgent, NarrationConfig
from newsreel.processors.preloader import AssetPreloader, PreloadConfig
from newsreel.recorder.session import RecordingConfig, RecordingSession
from newsreel.recorder.uploader import CloudinaryUploader, UploadConfig, WebhookNotifier
from newsreel.shared.config.config_loader import ConfigLoader, Credentials, get_credentials, get_placeholder_news
from newsreel.shared.types.errors import ConfigurationError, NewsreelError
from newsreel.shared.types.results import NewsItem
from newsreel.shared.utils.logging_config import console, log_error, log_step, setup_logging

logger = logging.getLogger(__name__)


class NewsreelApp:
    """Builds every component from configuration; credentials are checked up front."""

    def __init__(self, record_mode: bool = False, mix_output: Optional[str] = None,
                 credentials: Optional[Credentials] = None, play_sound: bool = True):
        self.record_mode = record_mode
        self.credentials = credentials or get_credentials()

        # Fail fast before any network activity
        newsdata_key = self.credentials.require_newsdata_key()
        gemini_keys = self.credentials.require_gemini_keys()
        if record_mode:
            self.credentials.require_cloudinary()

        narration_config = NarrationConfig.from_dict(ConfigLoader.section('narration'))
        preload_config = PreloadConfig.from_dict(ConfigLoader.section('preload'))
        audio_config = AudioConfig.from_dict(ConfigLoader.section('audio'))
        if mix_output:
            audio_config.monitor_path = mix_output
        if record_mode or not play_sound:
            # Recording and --no-device previews never open a playback device
            audio_config.output_device = False
        self.audio_config = audio_config
        self.recording_config = RecordingConfig.from_dict(ConfigLoader.section('recording'))

        self.sequencer = PlaybackSequencer(
            collector=NewsdataCollector(newsdata_key, CollectionConfig.from_dict(ConfigLoader.section('collection'))),
            curator=CurationAgent(gemini_keys[0], CurationConfig.from_dict(ConfigLoader.section('curation'))),
            narrator=NarrationAgent(gemini_keys, narration_config),
            preloader=AssetPreloader(preload_config),
            placeholders=[NewsItem.from_config(p) for p in get_placeholder_news()],
            timings=PlaybackTimings.from_dict(ConfigLoader.section('playback')),
            engine_factory=default_engine_factory(audio_config),
            record_mode=record_mode,
            music_choices=preload_config.music_choices,
            intro_text=narration_config.intro_text
        )
        self.controls = PresentationControls(self.sequencer, poll_interval=self.recording_config.poll_interval)
        self.renderer = FrameRenderer(self.sequencer, ViewConfig.from_dict(ConfigLoader.section('view')))

    def get_pipeline_info(self) -> dict:
        return {
            'record_mode': self.record_mode,
            'gemini_credentials': len(self.credentials.gemini_api_keys),
            'music_choices': len(self.sequencer.music_choices),
            'placeholders': len(self.sequencer.placeholders)
        }

    async def preview(self, snapshot: Optional[Path] = None) -> int:
        """Generate and play once, live."""
        log_step(logger, "Generating story")
        if not await self.sequencer.generate():
            console.print(render_console(self.sequencer.state))
            return 1

        log_step(logger, "Playing preview")
        start_time = time.time()
        await self.sequencer.play()
        if snapshot:
            self.renderer.snapshot(snapshot)

        result = self.sequencer.output_slot.poll()
        console.print(render_console(self.sequencer.state))
        if result is not None:
            logger.debug(f"Playback result: {json.dumps(result.to_dict(), ensure_ascii=False)}")
            _display_durations(result.durations)
        logger.info(f"✓ Preview finished in {time.time() - start_time:.1f}s")
        return 0

    async def record(self) -> int:
        """Record, composite and publish one presentation."""
        uploader = CloudinaryUploader(self.credentials, UploadConfig.from_dict(ConfigLoader.section('upload')))
        notifier = WebhookNotifier(self.credentials.webhook_url)
        session = RecordingSession(self.controls, self.renderer, uploader, notifier, self.recording_config)

        result = await session.run()
        log_step(logger, "Published", result.video_url)
        if result.image_url:
            logger.info(f"  Snapshot: {result.image_url}")
        logger.info(f"  Description:\n{result.description}")
        return 0

    async def close(self) -> None:
        await self.sequencer.close()


def _display_durations(durations: dict) -> None:
    table = Table(title="Phase durations (s)")
    table.add_column("Phase")
    table.add_column("Seconds", justify="right")
    for phase in ('overview', 'detail', 'logo', 'total'):
        if phase in durations:
            table.add_row(phase, f"{durations[phase]:.2f}")
    for index, seconds in enumerate(durations.get('items', []), 1):
        table.add_row(f"  item {index}", f"{seconds:.2f}")
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsreel", description="Narrated news reel generator")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--quiet", action="store_true", help="Silence third-party library logs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", help="Generate a story and play it live")
    preview.add_argument("--mix-output", help="Write the live audio mix to this WAV file")
    preview.add_argument("--no-device", action="store_true", help="Do not open an audio playback device")
    preview.add_argument("--snapshot", type=Path, help="Save the final frame as PNG")

    subparsers.add_parser("record", help="Record the presentation and upload it")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run newsreel from the command line."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, quiet_mode=args.quiet)

    try:
        app = NewsreelApp(record_mode=args.command == "record",
                          mix_output=getattr(args, 'mix_output', None),
                          play_sound=not getattr(args, 'no_device', False))
    except ConfigurationError as e:
        log_error(logger, str(e))
        return 1

    logger.debug(f"Pipeline info: {app.get_pipeline_info()}")
    try:
        if args.command == "record":
            return await app.record()
        return await app.preview(getattr(args, 'snapshot', None))
    except KeyboardInterrupt:
        log_error(logger, "Interrupted by user")
        return 1
    except (NewsreelError, asyncio.TimeoutError) as e:
        log_error(logger, f"{args.command} failed: {e or type(e).__name__}")
        logger.debug(traceback.format_exc())
        return 1
    finally:
        await app.close()


def run():
    """Entry point for the newsreel command."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        sys.exit(1)
    except Exception as e:
        print(f"newsreel failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
