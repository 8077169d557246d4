#!/usr/bin/env python3
"""
Playback Sequencer - drives one presentation from generation through playback.

generate(): intro narration → articles → curation → per-item narration (sequential)
→ preload → ready. play(): overview → detail (one step per item) → logo → stopped,
with background music faded in and out on the audio clock and each narration clip
awaited through its finished signal, bounded by a safety timer.
"""

import asyncio
import logging
import random
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from rich.markup import escape

from newsreel.collectors.collectors import NewsdataCollector
from newsreel.processors.curation_agent import CurationAgent
from newsreel.processors.narration_agent import NarrationAgent
from newsreel.processors.preloader import AssetCache, AssetPreloader
from newsreel.shared.types.errors import AudioInitializationError, NarrationError, PlaybackError
from newsreel.shared.types.results import LifecycleStatus, LogLevel, NewsItem, Phase, PlaybackResult
from newsreel.shared.utils.logging_config import log_error, log_warning

from .audio import AudioConfig, AudioEngine, AudioRoute
from .capture import CAPTURE_MIME, CaptureRecorder, OutputSlot
from .state import PlaybackTimings, PresentationState, StateListener

logger = logging.getLogger(__name__)

EngineFactory = Callable[[bool], Awaitable[AudioEngine]]

DEFAULT_INTRO_TEXT = "এই হলো আজকের প্রধান খবর."
NARRATION_FAILED_MESSAGE = "One or more audio narrations may have failed."
AUDIO_UNAVAILABLE_MESSAGE = "Audio output is unavailable; playback will continue without sound."


@dataclass
class SequencerContext:
    """Everything one presentation cycle produced, owned by the sequencer."""
    news: List[NewsItem]
    intro_audio: Optional[str] = None
    music_url: Optional[str] = None
    assets: AssetCache = field(default_factory=AssetCache)
    hashtags_en: str = ''
    hashtags_bn: str = ''
    workspace: Optional[Path] = None
    durations: Dict[str, Any] = field(default_factory=dict)

    def discard(self) -> None:
        self.assets.discard()
        if self.workspace is not None:
            shutil.rmtree(self.workspace, ignore_errors=True)
            self.workspace = None


def default_engine_factory(config: Optional[AudioConfig] = None) -> EngineFactory:
    async def create(capture: bool) -> AudioEngine:
        return await AudioEngine.create(config, capture)
    return create


class PlaybackSequencer:
    """Lifecycle state machine and phase protocol for the news presentation."""

    def __init__(self, collector: NewsdataCollector, curator: CurationAgent, narrator: NarrationAgent,
                 preloader: AssetPreloader, placeholders: List[NewsItem],
                 timings: Optional[PlaybackTimings] = None,
                 engine_factory: Optional[EngineFactory] = None,
                 record_mode: bool = False,
                 music_choices: Optional[List[str]] = None,
                 intro_text: str = DEFAULT_INTRO_TEXT,
                 workspace_root: Optional[Path] = None,
                 rng: Optional[random.Random] = None):
        self.collector = collector
        self.curator = curator
        self.narrator = narrator
        self.preloader = preloader
        self.placeholders = list(placeholders)
        self.timings = timings or PlaybackTimings()
        self.record_mode = record_mode
        self.music_choices = list(music_choices or [])
        self.intro_text = intro_text
        self.workspace_root = workspace_root
        self._engine_factory = engine_factory or default_engine_factory()
        self._rng = rng or random.Random()

        self.state = PresentationState()
        self.context = SequencerContext(news=list(self.placeholders))
        self.engine: Optional[AudioEngine] = None
        self.audio_failed = False
        self.output_slot: OutputSlot[PlaybackResult] = OutputSlot()

    @property
    def news(self) -> List[NewsItem]:
        return self.context.news

    @property
    def route(self) -> Optional[AudioRoute]:
        return self.engine.route if self.engine is not None else None

    def add_listener(self, listener: StateListener) -> None:
        self.state.add_listener(listener)

    def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self.state.add_log(message, level)
        if level == LogLevel.ERROR:
            log_error(logger, escape(message))
        elif level == LogLevel.WARNING:
            log_warning(logger, escape(message))
        else:
            logger.info(escape(message))

    async def _initialize_audio(self) -> None:
        """Build the audio graph once per session; failure leaves playback muted."""
        if self.audio_failed:
            self.state.error = AUDIO_UNAVAILABLE_MESSAGE
            return
        if self.engine is not None:
            return
        try:
            self.engine = await self._engine_factory(self.record_mode)
            self._log("Audio engine initialized.")
        except AudioInitializationError as e:
            self.audio_failed = True
            logger.debug(f"Audio engine construction failed: {e}")
            self._log("ERROR: Could not initialize audio engine. Playback may fail.", LogLevel.ERROR)
            self.state.error = AUDIO_UNAVAILABLE_MESSAGE

    async def _narrate(self, text: str, target: Path, label: str) -> Optional[str]:
        try:
            return str(await self.narrator.synthesize(text, target))
        except NarrationError as e:
            logger.debug(f"Narration for {label} failed: {e}")
            return None

    async def generate(self) -> bool:
        """Run one generation cycle; a no-op returning False unless idle or in error."""
        if self.state.status not in (LifecycleStatus.IDLE, LifecycleStatus.ERROR):
            logger.debug(f"Ignoring generate while {self.state.status.value}")
            return False
        if self.state.status == LifecycleStatus.ERROR:
            self.state.transition(LifecycleStatus.IDLE)

        self.state.clear_logs()
        self._log("Starting story generation process...")
        self.state.error = None
        self.state.transition(LifecycleStatus.GENERATING)
        await self._initialize_audio()

        self.context.discard()
        workspace = Path(tempfile.mkdtemp(prefix='newsreel-cycle-', dir=self.workspace_root))

        try:
            self.state.loading_message = "Generating Intro..."
            self._log("Generating intro narration...")
            intro_audio = await self._narrate(self.intro_text, workspace / "intro.wav", "intro")
            if intro_audio is None:
                self._log("Warning: Failed to generate intro audio.", LogLevel.WARNING)
            else:
                self._log("Intro narration generated.")

            self.state.loading_message = "Fetching Latest News..."
            self._log("Fetching latest news articles...")
            collection = await self.collector.collect()
            self._log(f"Fetched {collection.stats.total_fetched} articles in total.")
            self._log(f"{collection.stats.with_images} articles had images and were passed to the AI for curation.")

            self.state.loading_message = "Curating Top 5 Stories..."
            self._log("Curating top 5 stories with AI...")
            curation = await self.curator.curate(collection.articles)
            stories = curation.stories
            self._log(f"News curation complete. Received {len(stories)} stories.")
            if curation.filled_from_source:
                self._log(f"Warning: AI returned only {len(stories) - curation.filled_from_source} stories. "
                          f"The system filled in the rest.", LogLevel.WARNING)

            news: List[NewsItem] = []
            for index, story in enumerate(stories):
                self.state.loading_message = f"Generating Narration {index + 1}/{len(stories)}..."
                self._log(f"Generating narration {index + 1}/{len(stories)} for: \"{story.headline[:20]}...\"")
                audio = await self._narrate(story.description, workspace / f"news-{index}.wav", f"item {index}")
                if audio is None:
                    self._log(f"Warning: Audio generation failed for \"{story.headline[:20]}...\"", LogLevel.WARNING)
                    self.state.error = NARRATION_FAILED_MESSAGE
                news.append(NewsItem(
                    id=f"news-{index}",
                    headline=story.headline,
                    description=story.description,
                    image=story.image_url,
                    narration_audio=audio,
                    headline_en=story.headline_en,
                    category=story.category
                ))
            self._log("All narrations processed.")

            music_url = self._rng.choice(self.music_choices) if self.music_choices else None

            self.state.transition(LifecycleStatus.PRELOADING)
            self.state.loading_message = "Loading All Assets..."
            self._log("Preloading all images and audio...")
            loaded, assets = await self.preloader.preload(news, intro_audio, music_url)
            missing = len(assets.entries) - assets.loaded
            if missing:
                self._log(f"Warning: {missing} assets could not be loaded and will be skipped.", LogLevel.WARNING)
            else:
                self._log("All assets preloaded successfully.")

            self.context = SequencerContext(
                news=loaded,
                intro_audio=intro_audio,
                music_url=music_url,
                assets=assets,
                hashtags_en=curation.hashtags_en,
                hashtags_bn=curation.hashtags_bn,
                workspace=workspace
            )
            self.state.loading_message = ''
            self.state.transition(LifecycleStatus.READY)
            self._log("Story ready for preview.")
            return True

        except Exception as e:
            message = f"Could not generate story. Error: {e}"
            logger.debug("Generation cycle failed", exc_info=True)
            self.state.error = message
            self._log(f"ERROR: {message}", LogLevel.ERROR)
            shutil.rmtree(workspace, ignore_errors=True)
            self.context = SequencerContext(news=list(self.placeholders))
            self.state.loading_message = ''
            self.state.transition(LifecycleStatus.ERROR)
            return False

    async def play(self) -> bool:
        """Run the phase protocol once; a no-op returning False unless ready."""
        if self.state.status != LifecycleStatus.READY:
            logger.debug(f"Ignoring play while {self.state.status.value}")
            return False

        route = self.route
        if self.engine is not None:
            await self.engine.clock.resume()

        recorder: Optional[CaptureRecorder] = None
        if self.record_mode and route is not None and route.capture is not None:
            self._log("Starting audio recording...")
            recorder = CaptureRecorder(route.capture)
            recorder.start()

        self.output_slot = OutputSlot()
        self.state.transition(LifecycleStatus.PLAYING)
        self._log("Starting preview playback...")

        durations = await self._run_phases(self.context, route)
        self.context.durations = durations

        audio_base64 = None
        if recorder is not None:
            self._log("Audio recording stopped. Processing...")
            audio_base64 = await recorder.stop()
            if audio_base64:
                self._log("Audio data is ready for script retrieval.")

        self.output_slot.announce(PlaybackResult(
            news=list(self.context.news),
            hashtags_en=self.context.hashtags_en,
            hashtags_bn=self.context.hashtags_bn,
            durations=durations,
            audio_base64=audio_base64,
            audio_mime=CAPTURE_MIME if audio_base64 else None
        ))
        self._log("Playback finished.")
        self.state.transition(LifecycleStatus.FINISHED)
        return True

    async def _run_phases(self, ctx: SequencerContext, route: Optional[AudioRoute]) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        timings = self.timings
        durations: Dict[str, Any] = {}
        started = loop.time()

        self.state.set_index(0)
        await self._start_music(ctx, route)
        if route is not None:
            route.narration.current_time = 0

        phase_start = loop.time()
        self.state.set_phase(Phase.OVERVIEW)
        await asyncio.sleep(timings.settle_delay)
        await self._play_and_wait(route, ctx.assets.resolve_audio(ctx.intro_audio), timings.intro_fallback)
        durations['overview'] = round(loop.time() - phase_start, 3)

        phase_start = loop.time()
        self.state.set_phase(Phase.DETAIL)
        item_durations = []
        for index, item in enumerate(ctx.news):
            item_start = loop.time()
            self.state.set_index(index)
            await asyncio.sleep(timings.settle_delay)
            await self._play_and_wait(route, ctx.assets.resolve_audio(item.narration_audio),
                                      timings.item_fallback)
            item_durations.append(round(loop.time() - item_start, 3))
        durations['detail'] = round(loop.time() - phase_start, 3)
        durations['items'] = item_durations

        phase_start = loop.time()
        self.state.set_phase(Phase.LOGO)
        if route is not None:
            route.music_gain.gain.ramp_to(0.0, timings.music_ramp_down)
        await asyncio.sleep(timings.logo_hold)
        durations['logo'] = round(loop.time() - phase_start, 3)

        self.state.set_phase(Phase.STOPPED)
        if route is not None:
            route.music.pause()
            now = self.engine.clock.now()
            route.music_gain.gain.cancel_scheduled_values(now).set_value_at_time(0.0, now)
        durations['total'] = round(loop.time() - started, 3)
        return durations

    async def _start_music(self, ctx: SequencerContext, route: Optional[AudioRoute]) -> None:
        """Start the looped music from zero and fade its gain in from 0 on the audio clock."""
        if route is None:
            return
        source = ctx.assets.resolve_audio(ctx.music_url)
        if source:
            route.music.loop = True
            route.music.current_time = 0
            try:
                await route.music.play(source)
            except PlaybackError as e:
                self._log(f"Warning: Background music failed to start: {e}", LogLevel.WARNING)

        gain = route.music_gain.gain
        now = self.engine.clock.now()
        gain.cancel_scheduled_values(now)
        gain.set_value_at_time(0.0, now)
        gain.linear_ramp_to_value_at_time(self.timings.music_target_gain, now + self.timings.music_ramp_up)

    async def _play_and_wait(self, route: Optional[AudioRoute], source: Optional[str], fallback: float) -> None:
        """Play a clip and wait for it to finish, or wait `fallback` when there is nothing to play."""
        if route is None or not source:
            await asyncio.sleep(fallback)
            return

        element = route.narration
        try:
            await element.play(source)
        except PlaybackError as e:
            self._log(f"Warning: Audio playback error: {e}", LogLevel.WARNING)
            return

        try:
            await asyncio.wait_for(asyncio.shield(element.finished),
                                   timeout=element.duration + self.timings.clip_grace)
        except asyncio.TimeoutError:
            element.pause()
            self._log("Warning: Narration clip did not report completion in time.", LogLevel.WARNING)

    def reset(self) -> bool:
        """Discard the current presentation and return to idle with placeholder content."""
        if self.state.status not in (LifecycleStatus.READY, LifecycleStatus.FINISHED, LifecycleStatus.ERROR):
            return False
        self.context.discard()
        self.context = SequencerContext(news=list(self.placeholders))
        self.state.error = None
        self.state.loading_message = ''
        self.state.clear_logs()
        self.state.set_phase(Phase.STOPPED)
        self.state.set_index(0)
        self.state.transition(LifecycleStatus.IDLE)
        return True

    async def close(self) -> None:
        """Release the cycle workspace and stop the audio engine."""
        self.context.discard()
        if self.engine is not None:
            await self.engine.close()
            self.engine = None
