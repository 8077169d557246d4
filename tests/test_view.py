from rich.console import Console

from newsreel.playback.console import render_console, render_log_lines
from newsreel.playback.state import PresentationState
from newsreel.playback.view import FrameRenderer, ViewConfig, typed_text
from newsreel.shared.types.results import LifecycleStatus, LogLevel, Phase


def test_typed_text_reveals_at_constant_rate():
    text = "বাংলাদেশের খবর"
    assert typed_text(text, 20, 0) == ''
    assert typed_text(text, 20, 0.25) == text[:5]
    assert typed_text(text, 20, 10) == text
    assert typed_text('', 20, 1) == ''


async def test_title_card_renders_before_generation(make_sequencer, tmp_path):
    renderer = FrameRenderer(make_sequencer(), ViewConfig(width=180, height=320))
    frame = renderer.render()

    assert frame.size == (180, 320)
    assert frame.mode == 'RGB'
    assert renderer.snapshot(tmp_path / "shots" / "idle.png").read_bytes()[:8] == b'\x89PNG\r\n\x1a\n'


async def test_every_phase_renders_with_loaded_assets(make_sequencer):
    sequencer = make_sequencer()
    await sequencer.generate()
    renderer = FrameRenderer(sequencer, ViewConfig(width=180, height=320))
    frames = {}

    for phase, index in ((Phase.OVERVIEW, 0), (Phase.DETAIL, 0), (Phase.DETAIL, 4), (Phase.LOGO, 4)):
        sequencer.state.set_phase(phase)
        sequencer.state.set_index(index)
        frames[(phase, index)] = renderer.render()

    assert all(frame.size == (180, 320) for frame in frames.values())
    assert frames[(Phase.OVERVIEW, 0)].tobytes() != frames[(Phase.LOGO, 4)].tobytes()


async def test_detail_typing_progresses_with_time(make_sequencer):
    sequencer = make_sequencer()
    await sequencer.generate()
    renderer = FrameRenderer(sequencer, ViewConfig(width=180, height=320))
    sequencer.state.set_phase(Phase.DETAIL)
    started = renderer._step_started

    early = renderer.render(now=started)
    late = renderer.render(now=started + 5)

    assert early.tobytes() != late.tobytes()


async def test_missing_images_render_without_error(make_sequencer):
    sequencer = make_sequencer()
    renderer = FrameRenderer(sequencer, ViewConfig(width=180, height=320))
    sequencer.state.set_phase(Phase.DETAIL)

    assert renderer.render().size == (180, 320)


def test_console_shows_error_banner_and_recent_logs():
    state = PresentationState(status=LifecycleStatus.ERROR, error="Could not generate story. Error: offline")
    for i in range(30):
        state.add_log(f"line {i}")
    state.add_log("ERROR: Could not generate story. Error: offline", LogLevel.ERROR)

    console = Console(record=True, width=100)
    console.print(render_console(state, max_lines=5))
    output = console.export_text()

    assert "An Error Occurred" in output
    assert "Generation Log" in output
    assert "line 29" in output
    assert "line 10" not in output
    assert len(render_log_lines(state.logs, 5).plain.splitlines()) == 5
