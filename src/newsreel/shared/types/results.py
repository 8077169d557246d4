#!/usr/bin/env python3
"""
Result Types - structured data passed between the generation pipeline and the player.

Raw articles come from the article source, curated stories from the curation agent,
news items are what the player shows, and the playback result is the completion
object handed to whoever records the presentation.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional
from enum import Enum


class LifecycleStatus(str, Enum):
    """Presentation lifecycle stages."""
    IDLE = "idle"
    GENERATING = "generating"
    PRELOADING = "preloading"
    READY = "ready"
    PLAYING = "playing"
    FINISHED = "finished"
    ERROR = "error"


class Phase(str, Enum):
    """Playback phases, in protocol order."""
    STOPPED = "stopped"
    OVERVIEW = "overview"
    DETAIL = "detail"
    LOGO = "logo"


class LogLevel(str, Enum):
    """Severity of a presentation log entry."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class RawArticle:
    """Article as returned by the article source."""
    id: str
    title: str
    description: str
    image_url: str
    link: str = ''
    source_id: str = ''
    pub_date: str = ''

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'RawArticle':
        """Create a RawArticle from a newsdata.io result entry."""
        return cls(
            id=str(data.get('article_id') or ''),
            title=(data.get('title') or '').strip(),
            description=(data.get('description') or '').strip(),
            image_url=(data.get('image_url') or '').strip(),
            link=data.get('link') or '',
            source_id=data.get('source_id') or '',
            pub_date=data.get('pubDate') or ''
        )

    def to_prompt_dict(self) -> Dict[str, str]:
        """Subset of fields sent to the curation model."""
        return {
            'title': self.title,
            'description': self.description,
            'image_url': self.image_url
        }


@dataclass
class CuratedStory:
    """One story selected and rewritten by the curation agent."""
    headline: str
    description: str
    image_url: str
    headline_en: str = ''
    category: str = ''


@dataclass
class CurationResult:
    """Curated stories plus the hashtags generated alongside them."""
    stories: List[CuratedStory]
    hashtags_en: str
    hashtags_bn: str
    filled_from_source: int = 0


@dataclass(frozen=True)
class NewsItem:
    """A curated story ready for playback."""
    id: str
    headline: str
    description: str
    image: str
    narration_audio: Optional[str] = None
    headline_en: str = ''
    category: str = ''

    @classmethod
    def from_config(cls, data: Dict[str, Any]) -> 'NewsItem':
        """Create a placeholder item from a configuration entry."""
        return cls(
            id=data['id'],
            headline=data.get('headline', ''),
            description=data.get('description', ''),
            image=data.get('image', ''),
            headline_en=data.get('headline_en', '')
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return asdict(self)


@dataclass
class PlaybackResult:
    """Completion object announced once a playback run reaches its terminal phase."""
    news: List[NewsItem]
    hashtags_en: str
    hashtags_bn: str
    durations: Dict[str, Any] = field(default_factory=dict)
    audio_base64: Optional[str] = None
    audio_mime: Optional[str] = None

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_base64)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format for JSON serialization."""
        return {
            'news': [item.to_dict() for item in self.news],
            'hashtags_en': self.hashtags_en,
            'hashtags_bn': self.hashtags_bn,
            'durations': self.durations,
            'has_audio': self.has_audio,
            'audio_mime': self.audio_mime
        }
