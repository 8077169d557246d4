#!/usr/bin/env python3
"""
Audio Router - a small audio graph for narration and background music.

Two media elements feed the graph: narration goes straight to the monitor output,
music passes through a gain node so it can be faded in and out on the audio clock.
In capture mode both branches also fan out to a capture sink that hands int16 PCM
chunks to subscribers. The monitor plays through a sounddevice stream when a device
output is configured. A render pump task mixes fixed-size blocks with numpy in real
time while the clock is running.
"""

import asyncio
import logging
import subprocess
import time
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from newsreel.shared.types.errors import AudioInitializationError, PlaybackError
from newsreel.shared.utils.logging_config import log_warning

logger = logging.getLogger(__name__)


@dataclass
class AudioConfig:
    """Engine format and external decoder settings."""
    sample_rate: int = 24000
    block_seconds: float = 0.05
    ffmpeg_binary: str = "ffmpeg"
    monitor_path: Optional[str] = None
    output_device: bool = False
    device: Optional[Any] = None
    output_latency: Any = "high"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AudioConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


class AudioClock:
    """Seconds since creation, excluding time spent suspended."""

    def __init__(self, time_source: Callable[[], float] = time.monotonic):
        self._time = time_source
        self._origin = self._time()
        self._suspended_total = 0.0
        self._suspended_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._suspended_at is None

    @property
    def state(self) -> str:
        return "running" if self.running else "suspended"

    def now(self) -> float:
        reference = self._suspended_at if self._suspended_at is not None else self._time()
        return reference - self._origin - self._suspended_total

    def suspend(self) -> None:
        if self._suspended_at is None:
            self._suspended_at = self._time()

    async def resume(self) -> None:
        """Resume if suspended; a no-op when already running."""
        if self._suspended_at is not None:
            self._suspended_total += self._time() - self._suspended_at
            self._suspended_at = None
            logger.debug("Audio clock resumed")


class AudioParam:
    """Automation timeline for one parameter, evaluated against an AudioClock."""

    def __init__(self, clock: AudioClock, default_value: float = 1.0):
        self.clock = clock
        self.default_value = float(default_value)
        # (time, value, kind) sorted by time; kind is "set" or "linear"
        self._events: List[Tuple[float, float, str]] = []

    def _insert(self, when: float, value: float, kind: str) -> None:
        self._events.append((float(when), float(value), kind))
        self._events.sort(key=lambda e: e[0])

    def set_value_at_time(self, value: float, when: float) -> 'AudioParam':
        self._insert(when, value, "set")
        return self

    def linear_ramp_to_value_at_time(self, value: float, end_time: float) -> 'AudioParam':
        self._prune(self.clock.now())
        self._insert(end_time, value, "linear")
        return self

    def _prune(self, now: float) -> None:
        """Drop events that precede the latest "set" event at or before `now`."""
        anchor = None
        for index, (event_time, _, kind) in enumerate(self._events):
            if event_time > now:
                break
            if kind == "set":
                anchor = index
        if anchor:
            del self._events[:anchor]

    def cancel_scheduled_values(self, start_time: float) -> 'AudioParam':
        self._events = [e for e in self._events if e[0] < start_time]
        return self

    def ramp_to(self, target: float, duration: float, start: Optional[float] = None) -> 'AudioParam':
        """Hold the current value at `start` (default now), then ramp linearly to `target`."""
        start = self.clock.now() if start is None else start
        held = self.value_at(start)
        self.cancel_scheduled_values(start)
        self.set_value_at_time(held, start)
        self.linear_ramp_to_value_at_time(target, start + duration)
        return self

    def value_at(self, when: float) -> float:
        value = self.default_value
        previous_time = 0.0
        for event_time, event_value, kind in self._events:
            if when < event_time:
                if kind == "linear" and event_time > previous_time:
                    fraction = (when - previous_time) / (event_time - previous_time)
                    return value + (event_value - value) * max(0.0, fraction)
                return value
            value = event_value
            previous_time = event_time
        return value

    @property
    def value(self) -> float:
        return self.value_at(self.clock.now())

    @property
    def events(self) -> List[Tuple[float, float, str]]:
        return list(self._events)


def decode_audio(path: str, sample_rate: int, ffmpeg_binary: str = "ffmpeg") -> np.ndarray:
    """Decode a local clip into mono float32 samples at `sample_rate`."""
    source = Path(path)
    if not source.is_file():
        raise PlaybackError(f"Audio source not found: {path}")

    with open(source, 'rb') as f:
        header = f.read(12)

    if header[:4] == b'RIFF' and header[8:12] == b'WAVE':
        try:
            with wave.open(str(source), 'rb') as wf:
                channels = wf.getnchannels()
                width = wf.getsampwidth()
                rate = wf.getframerate()
                raw = wf.readframes(wf.getnframes())
        except (wave.Error, EOFError) as e:
            raise PlaybackError(f"Could not decode WAV {path}: {e}")
        samples = _pcm_to_float(raw, width)
        if channels > 1:
            samples = samples[:len(samples) - len(samples) % channels].reshape(-1, channels).mean(axis=1)
        return _resample(samples, rate, sample_rate)

    command = [ffmpeg_binary, '-v', 'error', '-i', str(source),
               '-f', 's16le', '-ac', '1', '-ar', str(sample_rate), '-']
    try:
        result = subprocess.run(command, capture_output=True, check=False)
    except FileNotFoundError:
        raise PlaybackError(f"Cannot decode {source.suffix or 'audio'} without {ffmpeg_binary}")
    if result.returncode != 0:
        raise PlaybackError(f"ffmpeg could not decode {path}: {result.stderr.decode(errors='replace')[-200:]}")
    return _pcm_to_float(result.stdout, 2)


def _pcm_to_float(raw: bytes, sample_width: int) -> np.ndarray:
    if sample_width == 1:
        return (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    if sample_width == 2:
        return np.frombuffer(raw[:len(raw) - len(raw) % 2], dtype='<i2').astype(np.float32) / 32768.0
    if sample_width == 4:
        return np.frombuffer(raw[:len(raw) - len(raw) % 4], dtype='<i4').astype(np.float32) / 2147483648.0
    raise PlaybackError(f"Unsupported sample width: {sample_width}")


def _resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    if source_rate == target_rate or len(samples) == 0:
        return samples.astype(np.float32)
    target_length = int(round(len(samples) * target_rate / source_rate))
    positions = np.linspace(0, len(samples) - 1, target_length)
    return np.interp(positions, np.arange(len(samples)), samples).astype(np.float32)


def float_to_pcm16(block: np.ndarray) -> bytes:
    return (np.clip(block, -1.0, 1.0) * 32767).astype('<i2').tobytes()


class AudioElement:
    """A media element: one loaded clip, a play head and a finished signal."""

    def __init__(self, sample_rate: int = 24000, ffmpeg_binary: str = "ffmpeg", name: str = "element"):
        self.sample_rate = sample_rate
        self.ffmpeg_binary = ffmpeg_binary
        self.name = name
        self.src: Optional[str] = None
        self.loop = False
        self._samples = np.zeros(0, dtype=np.float32)
        self._position = 0
        self._playing = False
        self._finished: Optional[asyncio.Future] = None
        self._decoded: Dict[str, np.ndarray] = {}

    @property
    def duration(self) -> float:
        return len(self._samples) / self.sample_rate

    @property
    def current_time(self) -> float:
        return self._position / self.sample_rate

    @current_time.setter
    def current_time(self, seconds: float) -> None:
        self._position = max(0, min(len(self._samples), int(seconds * self.sample_rate)))

    @property
    def paused(self) -> bool:
        return not self._playing

    @property
    def finished(self) -> asyncio.Future:
        """Resolves when the current play-through reaches its end (never while looping)."""
        if self._finished is None:
            self._finished = asyncio.get_running_loop().create_future()
        return self._finished

    async def load(self, src: str) -> None:
        """Decode `src` and rewind; decoded clips are reused."""
        if src not in self._decoded:
            self._decoded[src] = await asyncio.to_thread(
                decode_audio, src, self.sample_rate, self.ffmpeg_binary)
        self.src = src
        self._samples = self._decoded[src]
        self._position = 0

    async def play(self, src: Optional[str] = None) -> None:
        """Start playback; raises PlaybackError when the source cannot be played."""
        if src is not None and src != self.src:
            await self.load(src)
        if self.src is None or len(self._samples) == 0:
            raise PlaybackError(f"{self.name}: nothing to play")
        if self._position >= len(self._samples):
            self._position = 0
        if self._finished is None or self._finished.done():
            self._finished = asyncio.get_running_loop().create_future()
        self._playing = True

    def pause(self) -> None:
        self._playing = False

    def read(self, frames: int) -> np.ndarray:
        """Next `frames` samples of output; silence while paused."""
        out = np.zeros(frames, dtype=np.float32)
        if not self._playing:
            return out

        filled = 0
        total = len(self._samples)
        while filled < frames:
            chunk = self._samples[self._position:self._position + frames - filled]
            out[filled:filled + len(chunk)] = chunk
            filled += len(chunk)
            self._position += len(chunk)
            if self._position >= total:
                if self.loop and total:
                    self._position = 0
                    continue
                self._playing = False
                if self._finished is not None and not self._finished.done():
                    self._finished.set_result(None)
                break
        return out


class AudioNode:
    """Graph node; blocks pushed in are processed and forwarded to every output."""

    def __init__(self):
        self.outputs: List['AudioNode'] = []

    def connect(self, destination: 'AudioNode') -> 'AudioNode':
        if destination not in self.outputs:
            self.outputs.append(destination)
        return destination

    def disconnect(self) -> None:
        self.outputs.clear()

    def process(self, block: np.ndarray, start: float, end: float) -> np.ndarray:
        return block

    def push(self, block: np.ndarray, start: float, end: float) -> None:
        out = self.process(block, start, end)
        for destination in self.outputs:
            destination.push(out, start, end)


class MediaElementSource(AudioNode):
    def __init__(self, element: AudioElement):
        super().__init__()
        self.element = element


class GainNode(AudioNode):
    def __init__(self, clock: AudioClock, value: float = 1.0):
        super().__init__()
        self.gain = AudioParam(clock, value)

    def process(self, block: np.ndarray, start: float, end: float) -> np.ndarray:
        first = self.gain.value_at(start)
        last = self.gain.value_at(end)
        if first == last:
            return block * np.float32(first)
        envelope = np.linspace(first, last, len(block), endpoint=False, dtype=np.float32)
        return block * envelope


class AudioSink(AudioNode):
    """Terminal node: sums every input for the current block, then writes it."""

    def __init__(self, sample_rate: int):
        super().__init__()
        self.sample_rate = sample_rate
        self.frames_written = 0
        self._pending: Optional[np.ndarray] = None

    def push(self, block: np.ndarray, start: float, end: float) -> None:
        if self._pending is None:
            self._pending = block.astype(np.float32, copy=True)
        else:
            self._pending += block

    def flush(self, frames: int) -> None:
        block = self._pending if self._pending is not None else np.zeros(frames, dtype=np.float32)
        self._pending = None
        self.write(block)
        self.frames_written += len(block)

    def write(self, block: np.ndarray) -> None:
        pass

    def close(self) -> None:
        pass


class DeviceOutput:
    """Mono float32 playback on a PortAudio device through sounddevice."""

    def __init__(self, sample_rate: int, device: Optional[Any] = None, latency: Any = "high"):
        try:
            # PortAudio is a system library; importing without it raises OSError
            import sounddevice as sd
        except OSError as e:
            raise AudioInitializationError(f"PortAudio is not available: {e}") from e

        self._device_error = sd.PortAudioError
        try:
            self._stream = sd.OutputStream(samplerate=sample_rate, channels=1, dtype='float32',
                                           device=device, latency=latency)
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise AudioInitializationError(f"Could not open audio output device: {e}") from e
        logger.debug(f"Audio output opened on device {self._stream.device} at {sample_rate} Hz")

    @property
    def active(self) -> bool:
        return self._stream is not None

    def write(self, block: np.ndarray) -> None:
        if self._stream is None or not len(block):
            return
        try:
            self._stream.write(np.ascontiguousarray(block, dtype=np.float32).reshape(-1, 1))
        except self._device_error as e:
            log_warning(logger, f"Audio output device failed, continuing without sound: {e}")
            self.close()

    def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except self._device_error as e:
            logger.debug(f"Audio output did not close cleanly: {e}")


class MonitorSink(AudioSink):
    """Live output to a playback device, optionally mirrored into a WAV file."""

    def __init__(self, sample_rate: int, path: Optional[str] = None, output: Optional[DeviceOutput] = None):
        super().__init__(sample_rate)
        self.path = path
        self.output = output
        self.peak = 0.0
        self._wav = None
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            self._wav = wave.open(str(path), 'wb')
            self._wav.setnchannels(1)
            self._wav.setsampwidth(2)
            self._wav.setframerate(sample_rate)

    def write(self, block: np.ndarray) -> None:
        if len(block):
            self.peak = max(self.peak, float(np.max(np.abs(block))))
        if self.output is not None:
            self.output.write(block)
        if self._wav is not None:
            self._wav.writeframes(float_to_pcm16(block))

    def close(self) -> None:
        if self.output is not None:
            self.output.close()
        if self._wav is not None:
            self._wav.close()
            self._wav = None
            logger.info(f"Live mix written to {self.path}")


class CaptureStreamSink(AudioSink):
    """Capture destination; subscribers receive each block as int16 PCM bytes."""

    def __init__(self, sample_rate: int):
        super().__init__(sample_rate)
        self._subscribers: List[Callable[[bytes], None]] = []

    def subscribe(self, callback: Callable[[bytes], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def write(self, block: np.ndarray) -> None:
        if not self._subscribers:
            return
        chunk = float_to_pcm16(block)
        for callback in list(self._subscribers):
            callback(chunk)


@dataclass
class AudioRoute:
    """Wiring between the two media elements and the output sinks."""
    narration: AudioElement
    music: AudioElement
    narration_source: MediaElementSource
    music_source: MediaElementSource
    music_gain: GainNode
    monitor: MonitorSink
    capture: Optional[CaptureStreamSink] = None

    @property
    def sinks(self) -> List[AudioSink]:
        return [s for s in (self.monitor, self.capture) if s is not None]


def build_route(clock: AudioClock, config: AudioConfig, capture: bool = False) -> AudioRoute:
    """Narration → monitor; music → gain(0) → monitor; capture mode adds a second fan-out."""
    narration = AudioElement(config.sample_rate, config.ffmpeg_binary, name="narration")
    music = AudioElement(config.sample_rate, config.ffmpeg_binary, name="music")
    narration_source = MediaElementSource(narration)
    music_source = MediaElementSource(music)
    music_gain = GainNode(clock, 0.0)
    output = None
    if config.output_device:
        output = DeviceOutput(config.sample_rate, config.device, config.output_latency)
    monitor = MonitorSink(config.sample_rate, config.monitor_path, output)

    narration_source.connect(monitor)
    music_source.connect(music_gain)
    music_gain.connect(monitor)

    capture_sink = None
    if capture:
        capture_sink = CaptureStreamSink(config.sample_rate)
        narration_source.connect(capture_sink)
        music_gain.connect(capture_sink)

    return AudioRoute(narration=narration, music=music, narration_source=narration_source,
                      music_source=music_source, music_gain=music_gain,
                      monitor=monitor, capture=capture_sink)


class AudioEngine:
    """Owns the clock and the route, and runs the render pump."""

    def __init__(self, config: Optional[AudioConfig] = None, capture: bool = False,
                 clock: Optional[AudioClock] = None):
        self.config = config or AudioConfig()
        self.clock = clock or AudioClock()
        try:
            self.route = build_route(self.clock, self.config, capture)
        except (OSError, wave.Error, ValueError) as e:
            raise AudioInitializationError(f"Could not build audio graph: {e}") from e
        self.block_frames = max(1, int(self.config.sample_rate * self.config.block_seconds))
        self._pump_task: Optional[asyncio.Task] = None

    @classmethod
    async def create(cls, config: Optional[AudioConfig] = None, capture: bool = False) -> 'AudioEngine':
        engine = cls(config, capture)
        engine.start()
        return engine

    @property
    def running(self) -> bool:
        return self._pump_task is not None and not self._pump_task.done()

    def start(self) -> None:
        if not self.running:
            self._pump_task = asyncio.create_task(self._pump(), name="audio-pump")

    def render_block(self, frames: Optional[int] = None) -> None:
        """Mix one block from both elements through the graph into the sinks."""
        frames = frames or self.block_frames
        start = self.clock.now()
        end = start + frames / self.config.sample_rate
        for source in (self.route.narration_source, self.route.music_source):
            source.push(source.element.read(frames), start, end)
        for sink in self.route.sinks:
            sink.flush(frames)

    async def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        block_duration = self.block_frames / self.config.sample_rate
        deadline = loop.time()
        while True:
            if self.clock.running:
                self.render_block()
            deadline += block_duration
            delay = deadline - loop.time()
            if delay < -1.0:
                logger.debug(f"Audio pump fell {-delay:.2f}s behind, resynchronising")
                deadline = loop.time()
                delay = 0.0
            await asyncio.sleep(max(0.0, delay))

    async def close(self) -> None:
        self.route.narration.pause()
        self.route.music.pause()
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        for sink in self.route.sinks:
            sink.close()
