#!/usr/bin/env python3
"""
Player View - draws the presentation as Pillow frames.

Frames are derived from the sequencer state and its asset cache: a title card while
idle or finished, the overview list, one detail card per item with a typed-out
description, and the logo card, with the bottom overlay strip on top.
"""

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps

from newsreel.shared.types.results import LifecycleStatus, NewsItem, Phase

from .sequencer import PlaybackSequencer
from .state import PresentationState

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)
MUTED = (215, 215, 215)
YELLOW = (250, 204, 21)
BACKDROP = (24, 24, 27)


@dataclass
class ViewConfig:
    """Player canvas and typography."""
    title: str = "Paka Kotha Video"
    overview_title: str = "আজকের প্রধান খবর:"
    overview_subtitle: str = "সংবাদ সারসংক্ষেপ"
    width: int = 360
    height: int = 640
    font_path: Optional[str] = None
    typing_chars_per_second: float = 20.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ViewConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


def typed_text(text: str, chars_per_second: float, elapsed: float) -> str:
    """Prefix of `text` visible `elapsed` seconds into the typing effect."""
    if not text or elapsed <= 0 or chars_per_second <= 0:
        return ''
    return text[:int(elapsed * chars_per_second)]


@lru_cache(maxsize=32)
def _font(path: Optional[str], size: int):
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            logger.warning(f"Font {path} could not be loaded, using the default font")
    return ImageFont.load_default(size=size)


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> List[str]:
    """Greedy word wrap measured with the actual font."""
    lines: List[str] = []
    current = ''
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if current and draw.textlength(candidate, font=font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


class FrameRenderer:
    """Renders the current player view of a sequencer."""

    def __init__(self, sequencer: PlaybackSequencer, config: Optional[ViewConfig] = None):
        self.sequencer = sequencer
        self.config = config or ViewConfig()
        self.size = (self.config.width, self.config.height)
        self._images: Dict[Tuple[str, Tuple[int, int], bool], Optional[Image.Image]] = {}
        self._step_key: Tuple[Phase, int] = (Phase.STOPPED, 0)
        self._step_started = time.monotonic()
        sequencer.add_listener(self._on_state_change)

    def _on_state_change(self, state: PresentationState) -> None:
        key = (state.phase, state.current_index)
        if key != self._step_key:
            self._step_key = key
            self._step_started = time.monotonic()

    def _scale(self, value: float) -> int:
        return int(value * self.config.width / 360)

    def _image(self, path: Optional[str], size: Tuple[int, int], cover: bool = True) -> Optional[Image.Image]:
        """Load a local image fitted to `size`; None when missing or unreadable."""
        if not path or not Path(path).is_file():
            return None
        key = (path, size, cover)
        if key not in self._images:
            try:
                with Image.open(path) as source:
                    image = source.convert('RGBA')
                if cover:
                    image = ImageOps.fit(image, size, Image.Resampling.LANCZOS)
                else:
                    image.thumbnail(size, Image.Resampling.LANCZOS)
                self._images[key] = image
            except OSError as e:
                logger.debug(f"Unreadable image {path}: {e}")
                self._images[key] = None
        return self._images[key]

    def render(self, now: Optional[float] = None) -> Image.Image:
        """Draw one RGB frame for the current state."""
        now = time.monotonic() if now is None else now
        state = self.sequencer.state
        assets = self.sequencer.context.assets
        frame = Image.new('RGBA', self.size, BACKDROP + (255,))

        background = self._image(assets.get('background'), self.size)
        if background is not None:
            frame.alpha_composite(background)

        draw = ImageDraw.Draw(frame, 'RGBA')
        if state.phase == Phase.OVERVIEW:
            self._draw_overview(frame, draw, self.sequencer.news)
        elif state.phase == Phase.DETAIL and self.sequencer.news:
            index = min(state.current_index, len(self.sequencer.news) - 1)
            self._draw_detail(frame, draw, self.sequencer.news[index], now - self._step_started)
        elif state.phase == Phase.LOGO:
            self._draw_logo(frame, assets.get('logo'))
        elif state.status in (LifecycleStatus.IDLE, LifecycleStatus.ERROR, LifecycleStatus.FINISHED):
            self._draw_title_card(draw, state.status)

        self._draw_overlay(frame, assets.get('overlay'), assets.get('logo'), state.phase)
        return frame.convert('RGB')

    def _draw_title_card(self, draw: ImageDraw.ImageDraw, status: LifecycleStatus) -> None:
        width, height = self.size
        title_font = _font(self.config.font_path, self._scale(26))
        body_font = _font(self.config.font_path, self._scale(15))
        subtitle = "Playback complete." if status == LifecycleStatus.FINISHED else 'Click "Generate Story" to start.'
        draw.text((width / 2, height / 2 - self._scale(10)), self.config.title,
                  font=title_font, fill=WHITE, anchor='ms')
        draw.text((width / 2, height / 2 + self._scale(20)), subtitle,
                  font=body_font, fill=MUTED, anchor='ms')

    def _draw_overview(self, frame: Image.Image, draw: ImageDraw.ImageDraw, news: List[NewsItem]) -> None:
        width, _ = self.size
        draw.text((width / 2, self._scale(60)), self.config.overview_title,
                  font=_font(self.config.font_path, self._scale(30)), fill=WHITE, anchor='ms')
        draw.text((width / 2, self._scale(90)), self.config.overview_subtitle,
                  font=_font(self.config.font_path, self._scale(18)), fill=MUTED, anchor='ms')

        card_font = _font(self.config.font_path, self._scale(14))
        margin = self._scale(16)
        card_height = self._scale(64)
        thumb = (self._scale(56), self._scale(56))
        top = self._scale(144)
        for index, item in enumerate(news):
            y = top + index * (card_height + self._scale(8))
            draw.rounded_rectangle((margin, y, width - margin, y + card_height),
                                   radius=self._scale(8), fill=(0, 0, 0, 140))
            image = self._image(item.image, thumb)
            if image is not None:
                frame.alpha_composite(image, (margin + self._scale(4), y + self._scale(4)))
            text_left = margin + thumb[0] + self._scale(12)
            lines = wrap_text(draw, f"{index + 1}. {item.headline}", card_font, width - margin - text_left - 4)
            for line_no, line in enumerate(lines[:3]):
                draw.text((text_left, y + self._scale(8) + line_no * self._scale(18)), line,
                          font=card_font, fill=WHITE)

    def _draw_detail(self, frame: Image.Image, draw: ImageDraw.ImageDraw, item: NewsItem, elapsed: float) -> None:
        width, height = self.size
        margin = self._scale(24)
        inner = width - 2 * margin
        headline_font = _font(self.config.font_path, self._scale(22))
        body_font = _font(self.config.font_path, self._scale(16))

        headline_lines = wrap_text(draw, item.headline, headline_font, inner - self._scale(20))
        typed = typed_text(item.description, self.config.typing_chars_per_second, elapsed)
        body_lines = wrap_text(draw, typed, body_font, inner - self._scale(24))
        if len(typed) < len(item.description):
            body_lines = body_lines[:-1] + [(body_lines[-1] if body_lines else '') + '|']

        body_height = max(self._scale(120), len(body_lines) * self._scale(22) + self._scale(24))
        headline_height = len(headline_lines) * self._scale(28) + self._scale(20)
        image_height = self._scale(192)

        bottom = height - self._scale(128) - margin
        body_top = bottom - body_height
        headline_top = body_top - self._scale(16) - headline_height
        image_top = max(0, headline_top - self._scale(16) - image_height)

        image = self._image(item.image, (inner, image_height))
        if image is not None:
            frame.alpha_composite(image, (margin, image_top))
        draw.rounded_rectangle((margin, image_top, margin + inner, image_top + image_height),
                               radius=self._scale(8), outline=(255, 255, 255, 100), width=2)

        draw.rounded_rectangle((margin, headline_top, margin + inner, headline_top + headline_height),
                               radius=self._scale(8), fill=(250, 204, 21, 26))
        draw.rectangle((margin, headline_top, margin + self._scale(4), headline_top + headline_height), fill=YELLOW)
        for line_no, line in enumerate(headline_lines):
            draw.text((margin + self._scale(14), headline_top + self._scale(10) + line_no * self._scale(28)),
                      line, font=headline_font, fill=WHITE)

        draw.rounded_rectangle((margin, body_top, margin + inner, body_top + body_height),
                               radius=self._scale(8), fill=(0, 0, 0, 128))
        for line_no, line in enumerate(body_lines):
            draw.text((margin + self._scale(12), body_top + self._scale(12) + line_no * self._scale(22)),
                      line, font=body_font, fill=(240, 240, 240))

    def _draw_logo(self, frame: Image.Image, logo_path: Optional[str]) -> None:
        width, height = self.size
        logo = self._image(logo_path, (width // 2, height // 2), cover=False)
        if logo is not None:
            frame.alpha_composite(logo, ((width - logo.width) // 2, (height - logo.height) // 2))

    def _draw_overlay(self, frame: Image.Image, overlay_path: Optional[str],
                      logo_path: Optional[str], phase: Phase) -> None:
        width, height = self.size
        strip_height = self._scale(144)
        overlay = self._image(overlay_path, (width, strip_height))
        if overlay is not None:
            frame.alpha_composite(overlay, (0, height - strip_height))
        if phase != Phase.LOGO:
            logo = self._image(logo_path, (width, self._scale(64)), cover=False)
            if logo is not None:
                frame.alpha_composite(logo, ((width - logo.width) // 2, height - self._scale(20) - logo.height))

    def snapshot(self, path: Path) -> Path:
        """Save the current frame as PNG."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.render().save(path, format='PNG')
        return path
