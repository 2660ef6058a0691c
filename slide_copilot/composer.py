"""Turns a research summary into a single presentation slide via the LLM."""

from __future__ import annotations

import json
import logging
import re
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from copilot_shared.config import Settings, get_settings
from copilot_shared.llm_client import LLMProviderError, UnifiedLLMClient, get_llm_client
from copilot_shared.models import ConversationMessage, LLMProvider, MessageRole

from .document import Slide
from .exceptions import CompositionError

logger = logging.getLogger(__name__)

# Research passages shorter than this are too generic to count as "copied research"
_VERBATIM_MIN_CHARS = 40
_PASSAGE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")

COMPOSER_SYSTEM_PROMPT = (
    "You write one presentation slide at a time. The slide MUST relate to the overall "
    "presentation topic and MUST NOT include raw research text: summarize it in your own words. "
    "Return ONLY a JSON object with the string fields: title, content, "
    "backgroundImageDescription (a short description of a fitting background image) and "
    "spokenNarration (what the presenter says while the slide is shown)."
)


def strip_code_fences(raw: str) -> str:
    """Return the body of a ```json fenced block, or the text unchanged."""
    text = raw.strip()
    if text.startswith("```"):
        _, _, body = text.partition("\n")
        body = body.rstrip()
        if body.endswith("```"):
            body = body[:-3]
        text = body.strip()
    return text


def parse_slide_payload(raw: str) -> Slide:
    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CompositionError(f"Composer did not return valid JSON: {e}") from e
    if isinstance(data, dict) and isinstance(data.get("slide"), dict):
        data = data["slide"]
    if not isinstance(data, dict):
        raise CompositionError("Composer returned JSON that is not an object")
    try:
        return Slide.model_validate(data)
    except PydanticValidationError as e:
        raise CompositionError(f"Composer returned an incomplete slide: {e.error_count()} problem(s)") from e


def _normalize(text: str) -> str:
    return " ".join(text.lower().split()).strip(" .!?")


def copied_research_passages(content: str, research: str) -> List[str]:
    """Research sentences (and the whole summary) that reappear verbatim in ``content``.

    Matching ignores case, whitespace and trailing punctuation.
    """
    body = _normalize(content)
    passages = [_normalize(research)] + [_normalize(p) for p in _PASSAGE_BOUNDARY.split(research)]
    copied: List[str] = []
    for passage in passages:
        if len(passage) >= _VERBATIM_MIN_CHARS and passage in body and passage not in copied:
            copied.append(passage)
    return copied


def ensure_not_verbatim(slide: Slide, research: str) -> None:
    copied = copied_research_passages(slide.content, research)
    if copied:
        raise CompositionError(f"Composed slide reproduces {len(copied)} research passage(s) verbatim")


class SlideComposer:
    """Composes a slide for ``topic`` grounded on a research summary."""

    def __init__(
        self,
        llm_client: Optional[UnifiedLLMClient] = None,
        preferred_provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
    ) -> None:
        self._llm_client = llm_client
        self.preferred_provider = preferred_provider
        self.model = model

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SlideComposer":
        settings = settings or get_settings()
        provider = LLMProvider(settings.composer_provider) if settings.composer_provider else None
        return cls(preferred_provider=provider, model=settings.composer_model)

    @property
    def llm_client(self) -> UnifiedLLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    async def compose(self, *, topic: str, research: str, presentation_topic: str) -> Slide:
        user = (
            f"Overall presentation topic: {presentation_topic}\n"
            f"Topic of the new slide: {topic}\n\n"
            f"Research notes (do not copy verbatim):\n{research}"
        )
        messages = [
            ConversationMessage(role=MessageRole.SYSTEM, content=COMPOSER_SYSTEM_PROMPT),
            ConversationMessage(role=MessageRole.USER, content=user),
        ]
        try:
            raw, _provider = await self.llm_client.generate_response(
                messages,
                preferred_provider=self.preferred_provider,
                model=self.model,
                max_tokens=1200,
                temperature=0.6,
            )
        except LLMProviderError as e:
            raise CompositionError(f"Composer backend failed: {e}") from e

        slide = parse_slide_payload(raw)
        ensure_not_verbatim(slide, research)
        logger.info(f"🧩 Composed slide {slide.title!r} for topic {topic!r}")
        return slide
