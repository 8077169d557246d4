#!/usr/bin/env python3
"""
Uploader - Cloudinary upload API over aiohttp, plus the completion webhook.

Uploads are signed when an API key and secret are configured, otherwise they use the
unsigned upload preset.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from newsreel.shared.config.config_loader import Credentials
from newsreel.shared.types.errors import UploadError
from newsreel.shared.types.results import NewsItem
from newsreel.shared.utils.logging_config import log_warning

logger = logging.getLogger(__name__)


@dataclass
class UploadConfig:
    api_base: str = "https://api.cloudinary.com/v1_1"
    timeout_seconds: float = 300.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'UploadConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


def sign_params(params: Dict[str, str], api_secret: str) -> str:
    """Cloudinary signature: sha1 of the sorted `key=value` pairs joined by '&', plus the secret."""
    payload = '&'.join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ''))
    return hashlib.sha1(f"{payload}{api_secret}".encode('utf-8')).hexdigest()


def build_description(news: List[NewsItem], hashtags_en: str = '', hashtags_bn: str = '') -> str:
    """Post description: numbered English headlines followed by the hashtags."""
    lines = [f"{index}. {item.headline_en or item.headline}" for index, item in enumerate(news, 1)]
    tags = ' '.join(t for t in (hashtags_en.strip(), hashtags_bn.strip()) if t)
    if tags:
        lines.extend(['', tags])
    return '\n'.join(lines)


class CloudinaryUploader:
    """Uploads local media files and returns their secure URLs."""

    def __init__(self, credentials: Credentials, config: Optional[UploadConfig] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.cloud_name = credentials.require_cloudinary()
        self.credentials = credentials
        self.config = config or UploadConfig()
        self.session = session
        self._owns_session = session is None

    @property
    def signed(self) -> bool:
        return bool(self.credentials.cloudinary_api_key and self.credentials.cloudinary_api_secret)

    def _form_fields(self) -> Dict[str, str]:
        fields: Dict[str, str] = {}
        if self.credentials.cloudinary_upload_preset:
            fields['upload_preset'] = self.credentials.cloudinary_upload_preset
        if self.signed:
            fields['timestamp'] = str(int(time.time()))
            fields['signature'] = sign_params(fields, self.credentials.cloudinary_api_secret)
            fields['api_key'] = self.credentials.cloudinary_api_key
        return fields

    async def upload(self, path: Path, resource_type: str = "image") -> str:
        """Upload one file; raises UploadError unless a secure URL comes back."""
        path = Path(path)
        if not path.is_file():
            raise UploadError(f"Nothing to upload: {path} does not exist")

        url = f"{self.config.api_base}/{self.cloud_name}/{resource_type}/upload"
        form = aiohttp.FormData()
        for key, value in self._form_fields().items():
            form.add_field(key, value)
        data = await asyncio.to_thread(path.read_bytes)
        form.add_field('file', data, filename=path.name)

        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds))
        try:
            async with self.session.post(url, data=form) as response:
                payload = await response.json(content_type=None)
                status = response.status
        except asyncio.TimeoutError:
            raise UploadError(f"Upload of {path.name} timed out")
        except aiohttp.ClientError as e:
            raise UploadError(f"Upload of {path.name} failed: {e}")

        if status != 200 or not isinstance(payload, dict) or not payload.get('secure_url'):
            message = payload.get('error', {}).get('message') if isinstance(payload, dict) else None
            raise UploadError(f"Cloudinary rejected {path.name} (status {status}): {message or 'no secure_url'}")

        logger.info(f"Uploaded {path.name}: {payload['secure_url']}")
        return payload['secure_url']

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None


class WebhookNotifier:
    """Posts the published URLs and description to a webhook; failures are logged only."""

    def __init__(self, url: Optional[str], session: Optional[aiohttp.ClientSession] = None,
                 timeout_seconds: float = 30.0):
        self.url = url
        self.session = session
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def notify(self, video_url: str, image_url: Optional[str], description: str) -> bool:
        if not self.enabled:
            return False
        payload = {'video_url': video_url, 'image_url': image_url, 'description': description}
        session = self.session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        try:
            async with session.post(self.url, json=payload) as response:
                if response.status >= 400:
                    log_warning(logger, f"Webhook returned status {response.status}")
                    return False
            logger.info("Webhook notified")
            return True
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            log_warning(logger, f"Webhook notification failed: {e}")
            return False
        finally:
            if self.session is None:
                await session.close()
