#!/usr/bin/env python3
"""
News Collection Core - Configuration and data structures
"""

import logging
import re
from typing import Dict, Optional, Any
from dataclasses import dataclass

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


@dataclass
class CollectionConfig:
    """Request and filtering settings for the newsdata.io article source."""
    endpoint: str = "https://newsdata.io/api/1/latest"
    country: str = "BD"
    language: str = "en"
    query: str = "Bangladesh"
    priority_domain: str = "top"
    require_image: bool = True
    page_size: int = 10
    max_pages: int = 3
    max_articles: int = 30
    timeout_seconds: int = 30
    max_description_length: int = 500

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CollectionConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})

    def request_params(self, api_key: str, page: Optional[str] = None) -> Dict[str, str]:
        """Query parameters for one page request."""
        params = {
            'apikey': api_key,
            'country': self.country,
            'language': self.language,
            'q': self.query,
            'prioritydomain': self.priority_domain,
            'image': '1' if self.require_image else '0',
            'size': str(self.page_size)
        }
        if page:
            params['page'] = page
        return params


@dataclass
class CollectionStats:
    """Collection operation statistics."""
    total_fetched: int = 0
    with_images: int = 0
    duplicates: int = 0
    pages: int = 0
    processing_time: float = 0.0


class TextUtils:
    """Text processing utilities."""

    @staticmethod
    def clean_html(content: str, max_length: int = 500) -> str:
        """Clean HTML content and truncate."""
        if not content:
            return ''

        cleaned = BeautifulSoup(str(content), 'html.parser').get_text()
        cleaned = re.sub(r'\s+', ' ', cleaned).strip()

        # Truncate keeping word boundaries
        if len(cleaned) > max_length:
            truncated = cleaned[:max_length].rsplit(' ', 1)[0]
            return truncated + '...' if truncated else cleaned[:max_length]

        return cleaned

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """Basic URL validation."""
        return bool(url and
                   len(url) >= 10 and
                   (url.startswith('http://') or url.startswith('https://')))
