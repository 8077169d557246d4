#!/usr/bin/env python3
"""
Capture hook - records the capture sink during a playback run and publishes the
result on a single-assignment slot that an external driver polls.
"""

import asyncio
import base64
import logging
from typing import Generic, List, Optional, TypeVar

from newsreel.processors.narration_agent import pcm_to_wav
from newsreel.shared.types.errors import SlotError

from .audio import CaptureStreamSink

logger = logging.getLogger(__name__)

T = TypeVar('T')

CAPTURE_MIME = "audio/wav"


class CaptureRecorder:
    """Accumulates int16 chunks from the capture sink between start() and stop()."""

    def __init__(self, sink: CaptureStreamSink):
        self.sink = sink
        self._chunks: List[bytes] = []
        self._unsubscribe = None

    @property
    def recording(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self.recording:
            return
        self._chunks = []
        self._unsubscribe = self.sink.subscribe(self._chunks.append)
        logger.debug("Capture recording started")

    async def stop(self) -> Optional[str]:
        """Stop recording; returns the WAV blob base64-encoded, or None when nothing was heard."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pcm = b''.join(self._chunks)
        self._chunks = []
        if not pcm:
            logger.warning("Capture recording produced no audio")
            return None
        wav = pcm_to_wav(pcm, channels=1, rate=self.sink.sample_rate, sample_width=2)
        encoded = await asyncio.to_thread(base64.b64encode, wav)
        logger.info(f"Captured {len(pcm) / 2 / self.sink.sample_rate:.1f}s of audio")
        return encoded.decode('ascii')


class OutputSlot(Generic[T]):
    """Holds one value: assigned once, consumed at most once."""

    def __init__(self):
        self._value: Optional[T] = None
        self._assigned = False
        self._consumed = False
        self._event = asyncio.Event()

    @property
    def assigned(self) -> bool:
        return self._assigned

    @property
    def consumed(self) -> bool:
        return self._consumed

    def announce(self, value: T) -> None:
        if self._assigned:
            raise SlotError("Output slot already assigned")
        self._value = value
        self._assigned = True
        self._event.set()

    def poll(self) -> Optional[T]:
        """Take the value if present; None before assignment."""
        if not self._assigned:
            return None
        if self._consumed:
            raise SlotError("Output slot already consumed")
        self._consumed = True
        return self._value

    async def observe(self, timeout: Optional[float] = None) -> T:
        """Wait for the value and consume it."""
        await asyncio.wait_for(self._event.wait(), timeout)
        return self.poll()
