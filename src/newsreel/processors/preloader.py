#!/usr/bin/env python3
"""
Asset Preloader - concurrent, fail-soft download of every asset a presentation needs.

Each asset is fetched under its own timeout; a failure or timeout resolves that entry
to None so the barrier always completes and playback degrades instead of stalling.
"""

import asyncio
import dataclasses
import hashlib
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp

from newsreel.shared.types.results import NewsItem
from newsreel.shared.utils.logging_config import log_result, log_warning

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[bytes]]


@dataclass
class PreloadConfig:
    """Asset URLs and the per-asset timeout."""
    timeout_seconds: float = 20.0
    logo_url: str = ''
    background_url: str = ''
    overlay_url: str = ''
    music_choices: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PreloadConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


def audio_key(src: str) -> str:
    return f"audio:{src}"


@dataclass
class AssetCache:
    """Logical key → local file path (or None) for one presentation."""
    entries: Dict[str, Optional[str]] = field(default_factory=dict)
    directory: Optional[Path] = None

    def get(self, key: str) -> Optional[str]:
        return self.entries.get(key)

    def resolve_audio(self, src: Optional[str]) -> Optional[str]:
        """Local handle for an audio source; None when it failed to load."""
        if not src:
            return None
        return self.entries.get(audio_key(src))

    @property
    def loaded(self) -> int:
        return sum(1 for v in self.entries.values() if v)

    def discard(self) -> None:
        """Delete the cache's files; the entries are cleared."""
        if self.directory and self.directory.exists():
            shutil.rmtree(self.directory, ignore_errors=True)
        self.entries.clear()


def _is_remote(src: str) -> bool:
    return urlparse(src).scheme in ('http', 'https')


def _file_name(key: str, url: str) -> str:
    suffix = Path(urlparse(url).path).suffix[:8]
    digest = hashlib.sha1(f"{key}|{url}".encode('utf-8')).hexdigest()[:12]
    return f"{key.replace(':', '_')[:24]}-{digest}{suffix}"


class AssetPreloader:
    """Downloads images and audio into a per-cycle cache directory."""

    def __init__(self, config: Optional[PreloadConfig] = None, fetch: Optional[Fetcher] = None,
                 cache_root: Optional[Path] = None):
        self.config = config or PreloadConfig()
        self._fetch = fetch
        self.cache_root = cache_root

    async def preload(self, items: List[NewsItem], intro_audio: Optional[str] = None,
                      music_url: Optional[str] = None) -> Tuple[List[NewsItem], AssetCache]:
        """Fetch every asset concurrently; returns items with local image paths and the cache."""
        start_time = time.time()
        directory = Path(tempfile.mkdtemp(prefix='newsreel-assets-', dir=self.cache_root))
        cache = AssetCache(directory=directory)

        jobs: Dict[str, Tuple[str, bool]] = {}
        for index, item in enumerate(items):
            jobs[f"item-{index}"] = (item.image, False)
        for key, url in (('logo', self.config.logo_url),
                         ('background', self.config.background_url),
                         ('overlay', self.config.overlay_url)):
            if url:
                jobs[key] = (url, False)
        for src in [intro_audio, music_url] + [item.narration_audio for item in items]:
            if src:
                jobs[audio_key(src)] = (src, True)

        session = None
        fetch = self._fetch
        if fetch is None:
            session = aiohttp.ClientSession(headers={'User-Agent': 'newsreel/1.0'})
            fetch = self._session_fetcher(session)

        try:
            keys = list(jobs)
            handles = await asyncio.gather(*(
                self._load_one(key, src, is_audio, directory, fetch)
                for key, (src, is_audio) in jobs.items()
            ))
        finally:
            if session is not None:
                await session.close()

        cache.entries.update(zip(keys, handles))

        loaded_items = [
            dataclasses.replace(item, image=cache.get(f"item-{index}") or item.image)
            for index, item in enumerate(items)
        ]

        log_result(logger, "Preloaded assets", len(cache.entries), cache.loaded, time.time() - start_time)
        return loaded_items, cache

    async def _load_one(self, key: str, src: str, is_audio: bool, directory: Path,
                        fetch: Fetcher) -> Optional[str]:
        """Load one asset; timeouts and failures resolve to None."""
        try:
            return await asyncio.wait_for(self._load(key, src, is_audio, directory, fetch),
                                          timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            log_warning(logger, f"Asset {key} timed out after {self.config.timeout_seconds}s: {src}")
        except Exception as e:
            log_warning(logger, f"Failed to preload {key} ({src}): {e}")
        return None

    async def _load(self, key: str, src: str, is_audio: bool, directory: Path,
                    fetch: Fetcher) -> str:
        if is_audio and not _is_remote(src):
            path = Path(src)
            if not path.is_file() or path.stat().st_size == 0:
                raise FileNotFoundError(f"Audio clip not found: {src}")
            return str(path)

        data = await fetch(src)
        if not data:
            raise ValueError("empty response body")
        target = directory / _file_name(key, src)
        await asyncio.to_thread(target.write_bytes, data)
        return str(target)

    @staticmethod
    def _session_fetcher(session: aiohttp.ClientSession) -> Fetcher:
        async def fetch(url: str) -> bytes:
            async with session.get(url) as response:
                response.raise_for_status()
                return await response.read()
        return fetch
