#!/usr/bin/env python3
"""
Presentation State - lifecycle status, playback phase and the user-visible log.

The state is mutated only by the sequencer; the renderer and the control surface read
it. Lifecycle changes go through `transition()`, which enforces the state machine.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from newsreel.shared.types.errors import InvalidTransitionError
from newsreel.shared.types.results import LifecycleStatus, LogLevel, Phase

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    LifecycleStatus.IDLE: {LifecycleStatus.GENERATING},
    LifecycleStatus.GENERATING: {LifecycleStatus.PRELOADING, LifecycleStatus.ERROR},
    LifecycleStatus.PRELOADING: {LifecycleStatus.READY, LifecycleStatus.ERROR},
    LifecycleStatus.READY: {LifecycleStatus.PLAYING, LifecycleStatus.IDLE},
    LifecycleStatus.PLAYING: {LifecycleStatus.FINISHED},
    LifecycleStatus.FINISHED: {LifecycleStatus.IDLE},
    LifecycleStatus.ERROR: {LifecycleStatus.IDLE},
}

StateListener = Callable[['PresentationState'], None]


@dataclass
class LogEntry:
    """One line of the presentation log pane."""
    timestamp: datetime
    level: LogLevel
    message: str

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


@dataclass
class PlaybackTimings:
    """Phase protocol timings in seconds (music gain is linear, 0..1)."""
    settle_delay: float = 0.5
    intro_fallback: float = 4.0
    item_fallback: float = 7.0
    music_target_gain: float = 0.08
    music_ramp_up: float = 3.0
    music_ramp_down: float = 2.5
    logo_hold: float = 3.0
    clip_grace: float = 2.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PlaybackTimings':
        data = data or {}
        defaults = cls()
        return cls(**{k: float(data.get(k, getattr(defaults, k))) for k in defaults.__dict__})


@dataclass
class PresentationState:
    """Single source of truth for what the player is doing."""
    status: LifecycleStatus = LifecycleStatus.IDLE
    phase: Phase = Phase.STOPPED
    current_index: int = 0
    logs: List[LogEntry] = field(default_factory=list)
    error: Optional[str] = None
    loading_message: str = ''
    _listeners: List[StateListener] = field(default_factory=list, repr=False)

    def can_transition(self, target: LifecycleStatus) -> bool:
        return target in ALLOWED_TRANSITIONS.get(self.status, set())

    def transition(self, target: LifecycleStatus) -> None:
        """Move to `target` or raise InvalidTransitionError."""
        if not self.can_transition(target):
            raise InvalidTransitionError(f"Cannot move from {self.status.value} to {target.value}")
        logger.debug(f"Lifecycle {self.status.value} → {target.value}")
        self.status = target
        self.notify()

    def set_phase(self, phase: Phase) -> None:
        self.phase = phase
        self.notify()

    def set_index(self, index: int) -> None:
        self.current_index = index
        self.notify()

    def add_log(self, message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        entry = LogEntry(timestamp=datetime.now(), level=level, message=message)
        self.logs.append(entry)
        return entry

    def clear_logs(self) -> None:
        self.logs.clear()

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
