"""Slide model and the ordered slide document the agent mutates through actions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import InvariantViolation, SlideIndexError

logger = logging.getLogger(__name__)


class Slide(BaseModel):
    """A single slide. Wire names are camelCase; Python attributes are snake_case."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    title: str
    content: str
    background_image_description: str = Field(
        alias="backgroundImageDescription",
        description="Used to resolve a background asset externally",
    )
    spoken_narration: str = Field(alias="spokenNarration", description="What the presenter says")

    def to_wire(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class SlidePatch(BaseModel):
    """Partial slide update; only fields that are provided get merged."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    content: Optional[str] = None
    background_image_description: Optional[str] = Field(default=None, alias="backgroundImageDescription")
    spoken_narration: Optional[str] = Field(default=None, alias="spokenNarration")

    def changes(self) -> Dict[str, str]:
        # Slide fields are non-null, so an explicit None means "leave untouched"
        return self.model_dump(exclude_unset=True, exclude_none=True)


def default_seed_slide() -> Slide:
    """The welcome slide every new document starts with."""
    return Slide(
        title="Welcome to our presentation!",
        content="This is the first slide.",
        background_image_description="hello",
        spoken_narration="This is the first slide. Welcome to our presentation!",
    )


SlideLike = Union[Slide, Mapping[str, Any]]
PatchLike = Union[SlidePatch, Mapping[str, Any]]


class SlideDocument:
    """Ordered, never-empty sequence of slides plus a current-slide pointer.

    Invariants:
      - at least one slide always exists
      - ``0 <= current_index < len(self)``

    Not internally synchronized: callers serialize concurrent mutations.
    """

    def __init__(self, seed: Optional[SlideLike] = None) -> None:
        first = _coerce_slide(seed) if seed is not None else default_seed_slide()
        self._slides: List[Slide] = [first]
        self._current_index = 0

    def __len__(self) -> int:
        return len(self._slides)

    def __repr__(self) -> str:
        return f"SlideDocument(slides={len(self._slides)}, current_index={self._current_index})"

    @property
    def slides(self) -> Tuple[Slide, ...]:
        return tuple(self._slides)

    @property
    def current_index(self) -> int:
        return self._current_index

    def slide_at(self, index: int) -> Slide:
        self._check_index(index)
        return self._slides[index]

    def current_slide(self) -> Slide:
        return self._slides[self._current_index]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert_at(self, index: int, slide: SlideLike) -> int:
        """Insert ``slide`` at ``index`` (``0..len``) and return the index.

        The current pointer keeps pointing at the same logical slide.
        """
        if not _is_position(index) or not 0 <= index <= len(self._slides):
            raise SlideIndexError(index, len(self._slides), allow_end=True)
        new_slide = _coerce_slide(slide)
        self._slides.insert(index, new_slide)
        if index <= self._current_index:
            self._current_index += 1
        logger.info(f"➕ Inserted slide at {index} ({len(self._slides)} slides, current={self._current_index})")
        return index

    def append(self, slide: SlideLike) -> int:
        return self.insert_at(len(self._slides), slide)

    def update_at(self, index: int, partial: PatchLike) -> Slide:
        """Merge the provided fields into the slide at ``index``."""
        self._check_index(index)
        patch = partial if isinstance(partial, SlidePatch) else SlidePatch.model_validate(dict(partial))
        changes = patch.changes()
        updated = self._slides[index].model_copy(update=changes)
        self._slides[index] = updated
        logger.info(f"✏️ Updated slide {index}: {sorted(changes)}")
        return updated

    def delete_at(self, index: int) -> Slide:
        """Remove the slide at ``index``; the last remaining slide cannot be deleted."""
        if len(self._slides) == 1:
            raise InvariantViolation("Deleting is only possible once more than one slide exists")
        self._check_index(index)
        removed = self._slides.pop(index)
        if index < self._current_index:
            self._current_index -= 1
        self._current_index = min(self._current_index, len(self._slides) - 1)
        logger.info(f"🗑️ Deleted slide {index} ({len(self._slides)} slides, current={self._current_index})")
        return removed

    def navigate(self, delta: int) -> int:
        """Move the current pointer by ``delta``, silently clamped to the deck bounds."""
        target = self._current_index + int(delta)
        self._current_index = max(0, min(target, len(self._slides) - 1))
        return self._current_index

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_wire(self) -> List[Dict[str, str]]:
        return [slide.to_wire() for slide in self._slides]

    def _check_index(self, index: Any) -> None:
        if not _is_position(index) or not 0 <= index < len(self._slides):
            raise SlideIndexError(index, len(self._slides))


def _is_position(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _coerce_slide(value: SlideLike) -> Slide:
    if isinstance(value, Slide):
        return value
    return Slide.model_validate(dict(value))
