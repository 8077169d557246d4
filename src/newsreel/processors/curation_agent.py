#!/usr/bin/env python3
"""
Curation Agent - picks and rewrites the top stories with Gemini.

The model is asked for 8-10 candidates in a JSON schema; the final five are chosen
locally so the list stays diverse (one story per category where possible) and never
shows the same image twice. Shortfalls are filled from the raw articles verbatim.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field, ValidationError

from newsreel.shared.types.errors import CurationError
from newsreel.shared.types.results import CuratedStory, CurationResult, RawArticle

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    'Politics', 'Business', 'Technology', 'Sports', 'Entertainment',
    'Social', 'International', 'Crime', 'Weather'
]


class StoryCandidate(BaseModel):
    """One formatted story in the model response."""
    image_url: str = Field(description="The original image URL.")
    headline: str = Field(description="Rewritten, catchy, spoken-style Bangla headline.")
    headline_en: str = Field(default='', description="A short, catchy, English version of the headline.")
    description: str = Field(description="Engaging, spoken-style Bangla summary.")
    category: str = Field(default='', description="The assigned category for the story.")


class CurationResponse(BaseModel):
    """Complete structured response from the curation model."""
    news_items: List[StoryCandidate] = Field(default_factory=list)
    hashtags_en: str = ''
    hashtags_bn: str = ''


@dataclass
class CurationConfig:
    """Settings for the curation call and local selection."""
    model: str = "gemini-2.5-flash"
    story_count: int = 5
    fallback_category: str = "Social"
    default_hashtags_en: str = "#news #bangladesh #breakingnews"
    default_hashtags_bn: str = "#খবর #বাংলাদেশ #শিরোনাম"
    categories: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CurationConfig':
        data = data or {}
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.__dict__})


def select_top_stories(candidates: List[StoryCandidate], articles: List[RawArticle],
                       count: int = 5, fallback_category: str = "Social") -> List[CuratedStory]:
    """Choose `count` stories: unique categories first, then unique images, then raw fill."""
    selected: List[StoryCandidate] = []
    used_categories = set()
    used_images = set()

    # Pass 1: prefer one story per category
    for item in candidates:
        if len(selected) >= count:
            break
        if item.image_url in used_images or item.category in used_categories:
            continue
        selected.append(item)
        used_categories.add(item.category)
        used_images.add(item.image_url)

    # Pass 2: any remaining candidate with an unused image
    for item in candidates:
        if len(selected) >= count:
            break
        if item.image_url in used_images:
            continue
        selected.append(item)
        used_images.add(item.image_url)

    stories = [
        CuratedStory(
            headline=item.headline,
            description=item.description,
            image_url=item.image_url,
            headline_en=item.headline_en or item.headline,
            category=item.category
        )
        for item in selected
    ]

    # Fallback: original articles in source order, verbatim
    for article in articles:
        if len(stories) >= count:
            break
        if not article.image_url or article.image_url in used_images:
            continue
        stories.append(CuratedStory(
            headline=article.title,
            description=article.description,
            image_url=article.image_url,
            headline_en=article.title,
            category=fallback_category
        ))
        used_images.add(article.image_url)

    return stories[:count]


class CurationAgent:
    """Curation service backed by a Gemini JSON-schema call."""

    def __init__(self, api_key: str, config: Optional[CurationConfig] = None,
                 client_factory: Callable[..., Any] = genai.Client):
        self.api_key = api_key
        self.config = config or CurationConfig()
        self._client_factory = client_factory
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = self._client_factory(api_key=self.api_key)
        return self._client

    def _get_curation_prompt(self, articles: List[RawArticle]) -> str:
        """Editorial prompt for the candidate selection."""
        articles_json = json.dumps([a.to_prompt_dict() for a in articles], ensure_ascii=False)
        categories = ', '.join(f"'{c}'" for c in self.config.categories)
        return f"""You are a meticulous breaking news editor for a viral social media news channel in Bangladesh.
Curate 8-10 unique, engaging, visually-backed stories from the raw articles below.

Selection rules:
- Every story MUST keep a valid, non-null 'image_url' from its source article.
- Stories must be about completely distinct subjects; drop any that cover the same event, person or topic.

For each story provide:
1. headline: short, catchy, spoken-style Bangladeshi Bangla (under 12 words).
2. headline_en: a short, catchy English version of the headline.
3. description: a concise spoken-style Bangla summary (maximum 18 words).
4. image_url: the original 'image_url', unchanged.
5. category: one of [{categories}].

Also provide 'hashtags_en' and 'hashtags_bn': single strings of space-separated trending hashtags.

Raw articles: {articles_json}

Return a single JSON object with 'news_items' (8 to 10 stories), 'hashtags_en' and 'hashtags_bn'."""

    @staticmethod
    def _parse_response(text: Optional[str]) -> CurationResponse:
        """Parse the model output; anything unparseable counts as zero candidates."""
        if not text:
            return CurationResponse()
        try:
            return CurationResponse.model_validate_json(text)
        except ValidationError as e:
            logger.warning(f"Curation response failed validation, discarding candidates: {e.error_count()} errors")
            return CurationResponse()

    async def curate(self, articles: List[RawArticle]) -> CurationResult:
        """Return exactly `story_count` curated stories or raise CurationError."""
        if not articles:
            raise CurationError("No articles available for curation")

        try:
            response = await self.client.aio.models.generate_content(
                model=self.config.model,
                contents=self._get_curation_prompt(articles),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=CurationResponse
                )
            )
        except Exception as e:
            raise CurationError(f"Curation request failed: {e}") from e

        parsed = self._parse_response(getattr(response, 'text', None))
        logger.info(f"Curation model returned {len(parsed.news_items)} candidates")

        stories = select_top_stories(
            parsed.news_items, articles,
            count=self.config.story_count,
            fallback_category=self.config.fallback_category
        )
        candidate_images = {c.image_url for c in parsed.news_items}
        from_model = sum(1 for s in stories if s.image_url in candidate_images)
        if len(stories) < self.config.story_count:
            raise CurationError(
                f"Only {len(stories)} usable stories found; {self.config.story_count} are required")

        return CurationResult(
            stories=stories,
            hashtags_en=parsed.hashtags_en or self.config.default_hashtags_en,
            hashtags_bn=parsed.hashtags_bn or self.config.default_hashtags_bn,
            filled_from_source=len(stories) - from_model
        )
