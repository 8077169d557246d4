#!/usr/bin/env python3
"""
News Collection - newsdata.io article source with pagination, filtering and dedup
"""

import asyncio
import aiohttp
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from newsreel.shared.types.errors import ArticleSourceError, ConfigurationError
from newsreel.shared.types.results import RawArticle
from .core import CollectionConfig, CollectionStats, TextUtils

logger = logging.getLogger(__name__)


@dataclass
class CollectionResult:
    """Articles returned by one collection run plus its statistics."""
    articles: List[RawArticle]
    stats: CollectionStats


class ArticleParser:
    """Turns newsdata.io result entries into RawArticle records."""

    def __init__(self, config: CollectionConfig):
        self.config = config

    def parse_article(self, entry: Dict[str, Any]) -> Optional[RawArticle]:
        """Parse one result entry; None when a required field is missing."""
        if not isinstance(entry, dict):
            return None

        article = RawArticle.from_api(entry)
        article.description = TextUtils.clean_html(
            article.description, max_length=self.config.max_description_length)

        if not (article.id and article.title and article.description and article.image_url):
            return None
        if not TextUtils.is_valid_url(article.image_url):
            return None
        return article


class NewsdataCollector:
    """Article source backed by the newsdata.io `latest` endpoint."""

    def __init__(self, api_key: str, config: Optional[CollectionConfig] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize the collector; the API key is checked before any request is made."""
        if not api_key:
            raise ConfigurationError(
                "Newsdata.io API key is missing. Please set the NEWSDATA_API_KEY environment variable.")
        self.api_key = api_key
        self.config = config or CollectionConfig()
        self.parser = ArticleParser(self.config)
        self.session = session
        self._owns_session = session is None

    async def collect(self) -> CollectionResult:
        """Fetch up to `max_pages` pages, then filter, dedupe and truncate."""
        start_time = time.time()
        stats = CollectionStats()
        raw_entries: List[Dict[str, Any]] = []

        await self._init_session()
        try:
            next_page: Optional[str] = None
            for _ in range(self.config.max_pages):
                data = await self._fetch_page(next_page)
                stats.pages += 1

                results = data.get('results') or []
                if isinstance(results, list):
                    raw_entries.extend(results)

                next_page = data.get('nextPage')
                if not next_page:
                    break
        finally:
            await self._cleanup_session()

        stats.total_fetched = len(raw_entries)
        articles = self._process(raw_entries, stats)
        stats.processing_time = time.time() - start_time

        logger.info(f"Collection: {stats.pages} pages, {stats.total_fetched} fetched, "
                    f"{stats.with_images} usable → {len(articles)} articles ({stats.processing_time:.2f}s)")
        return CollectionResult(articles=articles, stats=stats)

    async def _fetch_page(self, page: Optional[str]) -> Dict[str, Any]:
        """Request one page; any transport or status failure aborts the collection."""
        params = self.config.request_params(self.api_key, page)
        try:
            async with self.session.get(self.config.endpoint, params=params) as response:
                if response.status != 200:
                    raise ArticleSourceError(f"Newsdata.io request failed (status {response.status})")
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise ArticleSourceError("Newsdata.io request timed out")
        except aiohttp.ClientError as e:
            raise ArticleSourceError(f"Newsdata.io connection error: {e}")

        if not isinstance(data, dict):
            raise ArticleSourceError("Newsdata.io returned an unexpected payload")
        if data.get('status') == 'error':
            results = data.get('results')
            message = results.get('message', 'unknown error') if isinstance(results, dict) else 'unknown error'
            raise ArticleSourceError(f"Newsdata.io error: {message}")
        return data

    def _process(self, entries: List[Dict[str, Any]], stats: CollectionStats) -> List[RawArticle]:
        """Filter incomplete entries, dedupe by id (first wins), truncate."""
        valid = [a for a in (self.parser.parse_article(e) for e in entries) if a]
        stats.with_images = len(valid)

        seen = set()
        unique = []
        for article in valid:
            if article.id in seen:
                stats.duplicates += 1
                continue
            seen.add(article.id)
            unique.append(article)

        return unique[:self.config.max_articles]

    async def _init_session(self):
        """Initialize HTTP session."""
        if self.session is not None:
            return

        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            headers={'User-Agent': 'newsreel/1.0 (+https://newsdata.io)'}
        )

    async def _cleanup_session(self):
        """Clean up HTTP session."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
