#!/usr/bin/env python3
"""
newsreel Playback

Lifecycle state machine, phase sequencer, audio routing, capture hook, control surface
and the rendered player view.
"""

from .audio import AudioClock, AudioConfig, AudioElement, AudioEngine, AudioParam, AudioRoute, GainNode
from .capture import CaptureRecorder, OutputSlot
from .console import render_console
from .controls import GENERATE_NEW, GENERATE_STORY, PLAY_PREVIEW, PROGRESS, PresentationControls
from .sequencer import PlaybackSequencer, SequencerContext
from .state import LogEntry, PlaybackTimings, PresentationState
from .view import FrameRenderer, ViewConfig, typed_text

__all__ = [
    'AudioClock',
    'AudioConfig',
    'AudioElement',
    'AudioEngine',
    'AudioParam',
    'AudioRoute',
    'GainNode',
    'CaptureRecorder',
    'OutputSlot',
    'render_console',
    'PresentationControls',
    'GENERATE_STORY',
    'GENERATE_NEW',
    'PLAY_PREVIEW',
    'PROGRESS',
    'PlaybackSequencer',
    'SequencerContext',
    'LogEntry',
    'PlaybackTimings',
    'PresentationState',
    'FrameRenderer',
    'ViewConfig',
    'typed_text'
]
