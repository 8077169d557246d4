#!/usr/bin/env python3
"""
Narration Agent - Gemini text-to-speech with retry and credential failover.

Gemini TTS returns raw 16-bit PCM; it is wrapped in a WAV header and written to the
cycle workspace so the player can load it like any other clip.
"""

import asyncio
import base64
import io
import logging
import random
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
from google import genai
from google.genai import types

from newsreel.shared.types.errors import ConfigurationError, NarrationBlockedError, NarrationError
from newsreel.shared.utils.logging_config import log_warning

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}
BLOCKING_FINISH_REASONS = {'SAFETY', 'PROHIBITED_CONTENT', 'BLOCKLIST', 'SPII'}


@dataclass
class NarrationConfig:
    """Settings for the TTS call and its retry policy."""
    model: str = "gemini-2.5-flash-preview-tts"
    voice: str = "Kore"
    sample_rate: int = 24000
    channels: int = 1
    sample_width: int = 2
    max_retries: int = 3
    base_delay: float = 2.0
    max_delay: float = 20.0
    request_timeout: float = 60.0
    intro_text: str = "এই হলো আজকের প্রধান খবর."

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'NarrationConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


def pcm_to_wav(pcm: bytes, channels: int = 1, rate: int = 24000, sample_width: int = 2) -> bytes:
    """Create a proper WAV file with correct headers."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


def is_transient_error(error: BaseException) -> bool:
    """Rate limits, server errors, timeouts and dropped connections are worth retrying."""
    if isinstance(error, NarrationError):
        return False
    if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError)):
        return True
    code = getattr(error, 'code', None) or getattr(error, 'status_code', None)
    if isinstance(code, int):
        return code in TRANSIENT_STATUS_CODES
    err_str = str(error).lower()
    return "429" in err_str or "resource_exhausted" in err_str or "unavailable" in err_str


class NarrationAgent:
    """Narration service: text in, local WAV file out."""

    def __init__(self, api_keys: List[str], config: Optional[NarrationConfig] = None,
                 client_factory: Callable[..., Any] = genai.Client,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if not api_keys:
            raise ConfigurationError(
                "Gemini API key is missing. Please set GEMINI_API_KEY (or GEMINI_API_KEYS for fallbacks).")
        self.api_keys = list(api_keys)
        self.config = config or NarrationConfig()
        self._client_factory = client_factory
        self._clients: Dict[str, Any] = {}
        self._sleep = sleep

    def _client_for(self, api_key: str):
        if api_key not in self._clients:
            self._clients[api_key] = self._client_factory(api_key=api_key)
        return self._clients[api_key]

    def _speech_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(
                        voice_name=self.config.voice
                    )
                )
            )
        )

    async def synthesize(self, text: str, output_path: Path) -> Path:
        """Synthesize `text` into a WAV file at `output_path`, failing over across credentials."""
        if not text or not text.strip():
            raise NarrationError("Nothing to narrate: empty text")

        last_error: Optional[BaseException] = None
        for index, api_key in enumerate(self.api_keys, 1):
            try:
                pcm = await self._synthesize_with_retries(api_key, text)
            except NarrationBlockedError:
                raise
            except Exception as e:
                last_error = e
                if index < len(self.api_keys):
                    log_warning(logger, f"Narration credential {index}/{len(self.api_keys)} failed, "
                                        f"trying the next one: {e}")
                continue

            wav = pcm_to_wav(pcm, self.config.channels, self.config.sample_rate, self.config.sample_width)
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(output_path.write_bytes, wav)
            logger.debug(f"Narration written to {output_path} ({len(wav):,} bytes)")
            return output_path

        raise NarrationError(
            f"Narration failed for all {len(self.api_keys)} credentials: {last_error}") from last_error

    async def _synthesize_with_retries(self, api_key: str, text: str) -> bytes:
        """One credential: retry transient failures with exponential backoff and jitter."""
        client = self._client_for(api_key)
        attempts = max(1, int(self.config.max_retries))

        for attempt in range(attempts):
            try:
                response = await asyncio.wait_for(
                    client.aio.models.generate_content(
                        model=self.config.model,
                        contents=text,
                        config=self._speech_config()
                    ),
                    timeout=self.config.request_timeout
                )
                return self._extract_pcm(response, text)
            except NarrationError:
                raise
            except Exception as e:
                if not is_transient_error(e) or attempt == attempts - 1:
                    raise
                delay = min(self.config.max_delay, self.config.base_delay * (2 ** attempt))
                delay += random.uniform(0, 1)
                logger.info(f"Narration attempt {attempt + 1} failed, retrying in {delay:.1f}s: {e}")
                await self._sleep(delay)

        raise NarrationError("Narration retries exhausted")

    @staticmethod
    def _extract_pcm(response: Any, text: str) -> bytes:
        """Pull PCM bytes out of a TTS response or explain why there are none."""
        candidates = getattr(response, 'candidates', None) or []
        candidate = candidates[0] if candidates else None
        content = getattr(candidate, 'content', None)
        parts = getattr(content, 'parts', None) or []
        inline_data = getattr(parts[0], 'inline_data', None) if parts else None
        data = getattr(inline_data, 'data', None)

        if data:
            if isinstance(data, str):
                data = base64.b64decode(data.strip())
            return data

        feedback = getattr(response, 'prompt_feedback', None)
        block_reason = getattr(feedback, 'block_reason', None)
        if block_reason:
            detail = getattr(feedback, 'block_reason_message', None) or ''
            raise NarrationBlockedError(
                f"Audio generation blocked for text: \"{text[:60]}\". Reason: {block_reason}. {detail}".strip())

        finish_reason = getattr(candidate, 'finish_reason', None)
        if getattr(finish_reason, 'name', finish_reason) in BLOCKING_FINISH_REASONS:
            raise NarrationBlockedError(
                f"Audio generation blocked for text: \"{text[:60]}\". Reason: {getattr(finish_reason, 'name', finish_reason)}")

        text_parts = [getattr(p, 'text', None) for p in parts]
        reply = ' '.join(t for t in text_parts if t)
        if reply:
            raise NarrationError(f"Gemini TTS returned a text response instead of audio: {reply[:200]}")

        if inline_data is not None:
            raise NarrationError("Received empty audio data from API.")
        raise NarrationError("Gemini TTS API did not return audio data or a clear error message.")
