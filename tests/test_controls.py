import asyncio

import pytest

from conftest import FakeCollector
from newsreel.playback.controls import (GENERATE_NEW, GENERATE_STORY, PLAY_PREVIEW, PROGRESS,
                                        PresentationControls)
from newsreel.shared.types.errors import ArticleSourceError, ControlError
from newsreel.shared.types.results import LifecycleStatus

S = LifecycleStatus

VISIBILITY = {
    S.IDLE: {GENERATE_STORY},
    S.GENERATING: {PROGRESS},
    S.PRELOADING: {PROGRESS},
    S.READY: {PLAY_PREVIEW, GENERATE_NEW},
    S.PLAYING: {PLAY_PREVIEW, GENERATE_NEW},
    S.FINISHED: {GENERATE_NEW},
    S.ERROR: {GENERATE_STORY},
}


@pytest.fixture
async def controls(make_sequencer):
    return PresentationControls(make_sequencer(), poll_interval=0.005)


@pytest.mark.parametrize("status", list(VISIBILITY))
async def test_visibility_follows_lifecycle(controls, status):
    controls.sequencer.state.status = status
    visible = {view.test_id for view in controls.visible_controls()}
    assert visible == VISIBILITY[status]


async def test_enablement_and_labels(controls):
    state = controls.sequencer.state

    state.status = S.READY
    assert controls.is_enabled(PLAY_PREVIEW)
    assert controls.view(PLAY_PREVIEW).label == "Play Preview"
    assert controls.is_enabled(GENERATE_NEW)

    state.status = S.PLAYING
    assert not controls.is_enabled(PLAY_PREVIEW)
    assert controls.view(PLAY_PREVIEW).label == "Playing..."
    assert not controls.is_enabled(GENERATE_NEW)

    state.status = S.ERROR
    assert controls.view(GENERATE_STORY).label == "Try Again"

    state.status = S.GENERATING
    state.loading_message = "Curating Top 5 Stories..."
    assert controls.view(PROGRESS).label == "Curating Top 5 Stories..."
    assert not controls.is_enabled(PROGRESS)


async def test_clicking_hidden_or_disabled_control_raises(controls):
    with pytest.raises(ControlError, match="not visible"):
        controls.click(PLAY_PREVIEW)
    controls.sequencer.state.status = S.PLAYING
    with pytest.raises(ControlError, match="disabled"):
        controls.click(PLAY_PREVIEW)
    with pytest.raises(ControlError, match="Unknown control"):
        controls.is_visible("missing-button")


async def test_full_cycle_through_controls(controls):
    await controls.wait_for(GENERATE_STORY, "visible", timeout=1)
    controls.click(GENERATE_STORY)
    await controls.wait_for(PLAY_PREVIEW, "enabled", timeout=5)

    controls.click(PLAY_PREVIEW)
    await controls.wait_for(PLAY_PREVIEW, "disabled", timeout=1)
    await controls.wait_for(PLAY_PREVIEW, "hidden", timeout=5)
    assert controls.sequencer.state.status == S.FINISHED

    await controls.click(GENERATE_NEW)
    assert controls.sequencer.state.status == S.IDLE
    assert controls.is_visible(GENERATE_STORY)
    await controls.drain()


async def test_try_again_after_error(make_sequencer):
    collector = FakeCollector(error=ArticleSourceError("offline"))
    controls = PresentationControls(make_sequencer(collector=collector), poll_interval=0.005)

    await controls.click(GENERATE_STORY)
    assert controls.view(GENERATE_STORY).label == "Try Again"

    collector.error = None
    await controls.click(GENERATE_STORY)
    assert controls.sequencer.state.status == S.READY


async def test_wait_for_times_out_and_rejects_unknown_state(controls):
    with pytest.raises(asyncio.TimeoutError):
        await controls.wait_for(PLAY_PREVIEW, "visible", timeout=0.02)
    with pytest.raises(ValueError):
        await controls.wait_for(PLAY_PREVIEW, "glowing", timeout=0.02)
