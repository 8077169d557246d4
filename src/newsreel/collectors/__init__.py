#!/usr/bin/env python3
"""
News Collection System

Article source for the news reel: newsdata.io latest headlines.
"""

from .collectors import (
    NewsdataCollector,
    ArticleParser,
    CollectionResult
)

from .core import (
    CollectionConfig,
    CollectionStats,
    TextUtils
)

__all__ = [
    'NewsdataCollector',
    'ArticleParser',
    'CollectionResult',
    'CollectionConfig',
    'CollectionStats',
    'TextUtils'
]
