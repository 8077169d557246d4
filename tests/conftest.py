"""Shared fixtures: tiny WAV/PNG assets, fast timings and fake collaborators."""

import io
import wave
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest
from PIL import Image

from newsreel.collectors.collectors import CollectionResult
from newsreel.collectors.core import CollectionStats
from newsreel.playback.audio import AudioConfig, AudioEngine
from newsreel.playback.sequencer import PlaybackSequencer
from newsreel.playback.state import PlaybackTimings
from newsreel.processors.preloader import AssetPreloader, PreloadConfig
from newsreel.shared.types.errors import NarrationError
from newsreel.shared.types.results import CuratedStory, CurationResult, NewsItem, RawArticle

TEST_RATE = 8000


def write_wav(path: Path, seconds: float = 0.1, rate: int = TEST_RATE, amplitude: float = 0.5) -> Path:
    t = np.arange(int(seconds * rate)) / rate
    samples = (np.sin(2 * np.pi * 440 * t) * amplitude * 32767).astype('<i2')
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), 'wb') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(samples.tobytes())
    return path


def png_bytes(color=(200, 30, 30), size=(8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def make_articles(count: int = 8) -> List[RawArticle]:
    return [
        RawArticle(id=f"a{i}", title=f"Title {i}", description=f"Description {i}",
                   image_url=f"https://img.example.com/{i}.jpg")
        for i in range(count)
    ]


def make_stories(count: int = 5) -> List[CuratedStory]:
    return [
        CuratedStory(headline=f"Headline {i}", description=f"Narration {i}",
                     image_url=f"https://img.example.com/{i}.jpg",
                     headline_en=f"English headline {i}", category=f"Cat{i}")
        for i in range(count)
    ]


class FakeCollector:
    def __init__(self, articles: Optional[List[RawArticle]] = None, error: Optional[Exception] = None):
        self.articles = make_articles() if articles is None else articles
        self.error = error
        self.calls = 0

    async def collect(self) -> CollectionResult:
        self.calls += 1
        if self.error:
            raise self.error
        stats = CollectionStats(total_fetched=len(self.articles), with_images=len(self.articles), pages=1)
        return CollectionResult(articles=list(self.articles), stats=stats)


class FakeCurator:
    def __init__(self, stories: Optional[List[CuratedStory]] = None, filled: int = 0,
                 error: Optional[Exception] = None):
        self.stories = make_stories() if stories is None else stories
        self.filled = filled
        self.error = error
        self.calls = 0

    async def curate(self, articles):
        self.calls += 1
        if self.error:
            raise self.error
        return CurationResult(stories=list(self.stories), hashtags_en="#news",
                              hashtags_bn="#খবর", filled_from_source=self.filled)


class FakeNarrator:
    """Writes a short WAV per request; texts listed in `fail_on` raise NarrationError."""

    def __init__(self, fail_on=(), seconds: float = 0.1):
        self.fail_on = set(fail_on)
        self.seconds = seconds
        self.texts: List[str] = []

    async def synthesize(self, text: str, output_path: Path) -> Path:
        self.texts.append(text)
        if text in self.fail_on:
            raise NarrationError(f"synthesis failed for {text}")
        return write_wav(output_path, self.seconds)


@pytest.fixture
def fast_timings() -> PlaybackTimings:
    return PlaybackTimings(settle_delay=0.01, intro_fallback=0.05, item_fallback=0.06,
                           music_target_gain=0.08, music_ramp_up=0.05, music_ramp_down=0.02,
                           logo_hold=0.04, clip_grace=0.3)


@pytest.fixture
def audio_config() -> AudioConfig:
    return AudioConfig(sample_rate=TEST_RATE, block_seconds=0.01)


@pytest.fixture
def image_fetch():
    calls = []

    async def fetch(url: str) -> bytes:
        calls.append(url)
        return png_bytes()
    fetch.calls = calls
    return fetch


@pytest.fixture
async def make_sequencer(tmp_path, fast_timings, audio_config, image_fetch):
    """Factory for a sequencer wired to fakes and a real audio engine."""
    created = []

    def factory(collector=None, curator=None, narrator=None, record_mode=False,
                engine_factory=None, music=True, preload_config=None):
        music_path = write_wav(tmp_path / "music.wav", seconds=0.5)
        config = preload_config or PreloadConfig(
            timeout_seconds=1.0,
            logo_url="https://cdn.example.com/logo.png",
            background_url="https://cdn.example.com/bg.png",
            overlay_url="https://cdn.example.com/overlay.png",
            music_choices=[str(music_path)] if music else [])

        async def default_engine(capture: bool) -> AudioEngine:
            return await AudioEngine.create(audio_config, capture)

        sequencer = PlaybackSequencer(
            collector=collector or FakeCollector(),
            curator=curator or FakeCurator(),
            narrator=narrator or FakeNarrator(),
            preloader=AssetPreloader(config, fetch=image_fetch, cache_root=tmp_path),
            placeholders=[NewsItem(id=f"ph{i}", headline=f"Placeholder {i}", description="",
                                   image="") for i in range(1, 6)],
            timings=fast_timings,
            engine_factory=engine_factory or default_engine,
            record_mode=record_mode,
            music_choices=config.music_choices,
            workspace_root=tmp_path
        )
        created.append(sequencer)
        return sequencer

    yield factory
    for sequencer in created:
        await sequencer.close()
