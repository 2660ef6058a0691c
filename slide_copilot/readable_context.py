"""Readable context: serialized state snapshots handed to the agent as grounding."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .document import SlideDocument

ALL_SLIDES_LABEL = "all slides"
CURRENT_SLIDE_LABEL = "current slide"


class ContextEntry(BaseModel):
    label: str
    value: str
    revision: int = 1
    updated_at: float = Field(default_factory=time.time)


def serialize_value(value: Any) -> str:
    """Strings pass through; models and JSON-compatible values become JSON."""
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True)
    return json.dumps(value, default=_json_default, ensure_ascii=False)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class ReadableContextStore:
    """Last-write-wins mapping of label -> serialized value.

    The store does not watch the document; owners republish after mutations.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, ContextEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label: str) -> bool:
        return label in self._entries

    def publish(self, label: str, value: Any) -> ContextEntry:
        previous = self._entries.get(label)
        entry = ContextEntry(
            label=label,
            value=serialize_value(value),
            revision=previous.revision + 1 if previous else 1,
        )
        self._entries[label] = entry
        return entry

    def get(self, label: str) -> str:
        return self._entries[label].value

    def remove(self, label: str) -> None:
        self._entries.pop(label, None)

    def entries(self) -> List[ContextEntry]:
        return list(self._entries.values())

    def snapshot(self) -> Dict[str, str]:
        return {label: entry.value for label, entry in self._entries.items()}

    def render(self) -> str:
        """Plain-text block suitable for prepending to an agent prompt."""
        return "\n\n".join(f"{label}:\n{entry.value}" for label, entry in self._entries.items())


def publish_document_state(store: ReadableContextStore, document: SlideDocument) -> None:
    """Republish the two document entries the agent reads."""
    store.publish(ALL_SLIDES_LABEL, document.to_wire())
    store.publish(CURRENT_SLIDE_LABEL, document.current_slide())
