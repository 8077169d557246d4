#!/usr/bin/env python3
"""
newsreel Generation Services

Gemini-backed story curation and narration, plus the asset preloader that prepares a
presentation for playback.
"""

from .curation_agent import CurationAgent, CurationConfig, select_top_stories
from .narration_agent import NarrationAgent, NarrationConfig, pcm_to_wav
from .preloader import AssetCache, AssetPreloader, PreloadConfig

__all__ = [
    'CurationAgent',
    'CurationConfig',
    'select_top_stories',
    'NarrationAgent',
    'NarrationConfig',
    'pcm_to_wav',
    'AssetCache',
    'AssetPreloader',
    'PreloadConfig'
]
