#!/usr/bin/env python3
"""
Presentation Controls - the identified control elements an operator or an automation
driver uses. Visibility and enablement are derived from the lifecycle status only.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from newsreel.shared.types.errors import ControlError
from newsreel.shared.types.results import LifecycleStatus

from .sequencer import PlaybackSequencer

logger = logging.getLogger(__name__)

GENERATE_STORY = "generate-story-button"
PROGRESS = "progress-indicator"
PLAY_PREVIEW = "play-preview-button"
GENERATE_NEW = "generate-new-button"

WAIT_STATES = ("visible", "hidden", "enabled", "disabled")


@dataclass(frozen=True)
class ControlSpec:
    visible_in: Set[LifecycleStatus]
    enabled_in: Set[LifecycleStatus]


CONTROL_SPECS: Dict[str, ControlSpec] = {
    GENERATE_STORY: ControlSpec(
        visible_in={LifecycleStatus.IDLE, LifecycleStatus.ERROR},
        enabled_in={LifecycleStatus.IDLE, LifecycleStatus.ERROR}),
    PROGRESS: ControlSpec(
        visible_in={LifecycleStatus.GENERATING, LifecycleStatus.PRELOADING},
        enabled_in=set()),
    PLAY_PREVIEW: ControlSpec(
        visible_in={LifecycleStatus.READY, LifecycleStatus.PLAYING},
        enabled_in={LifecycleStatus.READY}),
    GENERATE_NEW: ControlSpec(
        visible_in={LifecycleStatus.READY, LifecycleStatus.PLAYING, LifecycleStatus.FINISHED},
        enabled_in={LifecycleStatus.READY, LifecycleStatus.FINISHED}),
}


@dataclass(frozen=True)
class ControlView:
    """Rendered state of one control."""
    test_id: str
    label: str
    visible: bool
    enabled: bool


class PresentationControls:
    """Buttons bound to a sequencer; clicks are dispatched as background tasks."""

    def __init__(self, sequencer: PlaybackSequencer, poll_interval: float = 0.05):
        self.sequencer = sequencer
        self.poll_interval = poll_interval
        self._tasks: Set[asyncio.Task] = set()
        self._actions: Dict[str, Callable] = {
            GENERATE_STORY: sequencer.generate,
            PLAY_PREVIEW: sequencer.play,
            GENERATE_NEW: self._generate_new,
        }

    async def _generate_new(self) -> bool:
        return self.sequencer.reset()

    def _spec(self, test_id: str) -> ControlSpec:
        if test_id not in CONTROL_SPECS:
            raise ControlError(f"Unknown control: {test_id}")
        return CONTROL_SPECS[test_id]

    def _label(self, test_id: str) -> str:
        status = self.sequencer.state.status
        if test_id == GENERATE_STORY:
            return "Try Again" if status == LifecycleStatus.ERROR else "Generate Story"
        if test_id == PROGRESS:
            return self.sequencer.state.loading_message or "Working..."
        if test_id == PLAY_PREVIEW:
            return "Playing..." if status == LifecycleStatus.PLAYING else "Play Preview"
        return "Generate New"

    def is_visible(self, test_id: str) -> bool:
        return self.sequencer.state.status in self._spec(test_id).visible_in

    def is_enabled(self, test_id: str) -> bool:
        return self.is_visible(test_id) and self.sequencer.state.status in self._spec(test_id).enabled_in

    def view(self, test_id: str) -> ControlView:
        return ControlView(test_id=test_id, label=self._label(test_id),
                           visible=self.is_visible(test_id), enabled=self.is_enabled(test_id))

    def visible_controls(self) -> List[ControlView]:
        return [self.view(test_id) for test_id in CONTROL_SPECS if self.is_visible(test_id)]

    def click(self, test_id: str) -> asyncio.Task:
        """Dispatch the control's action like a UI event; raises ControlError if not clickable."""
        if not self.is_visible(test_id):
            raise ControlError(f"Control {test_id} is not visible")
        if not self.is_enabled(test_id) or test_id not in self._actions:
            raise ControlError(f"Control {test_id} is disabled")

        logger.debug(f"Click {test_id}")
        task = asyncio.create_task(self._actions[test_id](), name=f"click:{test_id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Control action {task.get_name()} failed: {task.exception()}")

    def _matches(self, test_id: str, state: str) -> bool:
        if state == "visible":
            return self.is_visible(test_id)
        if state == "hidden":
            return not self.is_visible(test_id)
        if state == "enabled":
            return self.is_enabled(test_id)
        return self.is_visible(test_id) and not self.is_enabled(test_id)

    async def wait_for(self, test_id: str, state: str = "visible", timeout: Optional[float] = None) -> None:
        """Poll until the control reaches `state`; raises asyncio.TimeoutError after `timeout`."""
        self._spec(test_id)
        if state not in WAIT_STATES:
            raise ValueError(f"Unknown wait state {state!r}; expected one of {', '.join(WAIT_STATES)}")

        async def poll():
            while not self._matches(test_id, state):
                await asyncio.sleep(self.poll_interval)

        await asyncio.wait_for(poll(), timeout)

    async def drain(self) -> None:
        """Wait for every dispatched action to complete."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
