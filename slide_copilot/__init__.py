"""Slide Copilot package.

Action-mediation layer between an AI agent and a slide presentation: the agent
reads readable-context snapshots and mutates the deck only through validated,
schema-described actions. A single-flight task runner drives the
research -> compose -> insert "generate next slide" workflow.

The FastAPI router is exposed via `get_router()` in `api.py`.
"""

from .actions import ActionDescriptor, ActionRegistry, ActionResult, ArgumentSpec, ArgumentType
from .document import Slide, SlideDocument, SlidePatch
from .exceptions import (
    AlreadyRunningError,
    CompositionError,
    DuplicateActionError,
    HandlerError,
    InvariantViolation,
    ResearchFailure,
    SessionClosedError,
    SessionConflictError,
    SlideCopilotError,
    SlideIndexError,
    UnknownActionError,
    ValidationError,
)
from .readable_context import ReadableContextStore
from .research_agent import LLMResearchAdapter, ResearchAdapter, ResearchResult
from .session import CopilotSession, SessionManager
from .task_runner import TaskRunner, TaskState, TaskStatus

__all__ = [
    "ActionDescriptor",
    "ActionRegistry",
    "ActionResult",
    "ArgumentSpec",
    "ArgumentType",
    "Slide",
    "SlideDocument",
    "SlidePatch",
    "AlreadyRunningError",
    "CompositionError",
    "DuplicateActionError",
    "HandlerError",
    "InvariantViolation",
    "ResearchFailure",
    "SessionClosedError",
    "SessionConflictError",
    "SlideCopilotError",
    "SlideIndexError",
    "UnknownActionError",
    "ValidationError",
    "ReadableContextStore",
    "LLMResearchAdapter",
    "ResearchAdapter",
    "ResearchResult",
    "CopilotSession",
    "SessionManager",
    "TaskRunner",
    "TaskState",
    "TaskStatus",
]
