#!/usr/bin/env python3
"""
newsreel Recorder

Drives a presentation through its controls, captures it to video, composites the
captured audio and publishes the result.
"""

from .media import composite, write_audio_payload
from .screen import ScreenCapture
from .session import RecordingConfig, RecordingSession, SessionResult
from .uploader import CloudinaryUploader, UploadConfig, WebhookNotifier, build_description

__all__ = [
    'composite',
    'write_audio_payload',
    'ScreenCapture',
    'RecordingConfig',
    'RecordingSession',
    'SessionResult',
    'CloudinaryUploader',
    'UploadConfig',
    'WebhookNotifier',
    'build_description'
]
