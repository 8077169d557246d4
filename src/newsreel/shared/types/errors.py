#!/usr/bin/env python3
"""Exception hierarchy for newsreel."""


class NewsreelError(Exception):
    """Base class for all newsreel errors."""


class ConfigurationError(NewsreelError, ValueError):
    """A required setting or credential is missing or invalid."""


class ArticleSourceError(NewsreelError):
    """The article source could not be queried."""


class CurationError(NewsreelError):
    """The curation service did not yield a usable story list."""


class NarrationError(NewsreelError):
    """Narration synthesis failed for every configured credential."""


class NarrationBlockedError(NarrationError):
    """The narration request was blocked by content filtering; never retried."""


class PlaybackError(NewsreelError):
    """An audio element could not start playing its source."""


class AudioInitializationError(NewsreelError):
    """The audio graph could not be constructed."""


class InvalidTransitionError(NewsreelError):
    """A lifecycle transition not permitted by the state machine."""


class SlotError(NewsreelError):
    """An output slot was assigned twice or consumed twice."""


class ControlError(NewsreelError):
    """A control was used while hidden or disabled."""


class MediaToolError(NewsreelError):
    """The external media tool (ffmpeg) failed."""


class UploadError(NewsreelError):
    """The media host rejected an upload."""
