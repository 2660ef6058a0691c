"""
Typed failures raised by the slide copilot core.

Every error carries a stable ``code`` and can be rendered with ``to_dict()`` so
the calling layer never has to parse exception messages.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SlideCopilotError(Exception):
    """Base class for all slide copilot failures."""

    code = "slide_copilot_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


# ---------------------------------------------------------------------------
# Document errors
# ---------------------------------------------------------------------------


class SlideIndexError(SlideCopilotError, IndexError):
    """Raised when a slide position is outside the allowed range."""

    code = "index_out_of_range"

    def __init__(self, index: Any, length: int, allow_end: bool = False):
        """
        Args:
            index: Offending position
            length: Number of slides at the time of the call
            allow_end: True when ``length`` itself was a valid position (inserts)
        """
        self.index = index
        self.length = length
        upper = length if allow_end else length - 1
        super().__init__(f"Slide index {index!r} is out of range [0, {upper}]")

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "index": self.index, "length": self.length}


class InvariantViolation(SlideCopilotError):
    """Raised when an operation would break a document invariant."""

    code = "invariant_violation"


# ---------------------------------------------------------------------------
# Action registry errors
# ---------------------------------------------------------------------------


class ActionError(SlideCopilotError):
    """Base exception for action registry failures."""

    code = "action_error"

    def __init__(self, message: str, action_name: Optional[str] = None):
        self.action_name = action_name
        if action_name:
            message = f"[{action_name}] {message}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "action": self.action_name}


class UnknownActionError(ActionError):
    """Raised when invoking an action name that is not registered."""

    code = "unknown_action"

    def __init__(self, action_name: str, available: Optional[List[str]] = None):
        self.available = sorted(available or [])
        super().__init__(f"Unknown action. Available actions: {self.available}", action_name)


class DuplicateActionError(ActionError):
    """Raised when registering an action name twice."""

    code = "duplicate_action"

    def __init__(self, action_name: str):
        super().__init__("Action is already registered", action_name)


class ValidationError(ActionError):
    """Raised when action arguments are missing or do not match their schema.

    ``problems`` lists every violation found, not just the first one.
    """

    code = "validation_error"

    def __init__(self, action_name: str, problems: List[Dict[str, str]]):
        self.problems = problems
        summary = "; ".join(f"{p['argument']}: {p['problem']}" for p in problems)
        super().__init__(f"Invalid arguments ({summary})", action_name)

    @property
    def arguments(self) -> List[str]:
        return [p["argument"] for p in self.problems]

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "problems": self.problems}


class HandlerError(ActionError):
    """Wraps any failure raised inside an action handler."""

    code = "handler_error"

    def __init__(self, action_name: str, cause: BaseException):
        self.cause = cause
        super().__init__(f"Handler failed: {type(cause).__name__}: {cause}", action_name)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if isinstance(self.cause, SlideCopilotError):
            data["cause"] = self.cause.to_dict()
        else:
            data["cause"] = {"code": type(self.cause).__name__, "message": str(self.cause)}
        return data


# ---------------------------------------------------------------------------
# Workflow errors
# ---------------------------------------------------------------------------


class ResearchFailure(SlideCopilotError):
    """Raised when the research backend fails or times out."""

    code = "research_failure"

    def __init__(self, topic: str, cause: Optional[BaseException] = None, timed_out: bool = False):
        self.topic = topic
        self.cause = cause
        self.timed_out = timed_out
        if timed_out:
            message = f"Research on {topic!r} timed out"
        elif cause is not None:
            message = f"Research on {topic!r} failed: {cause}"
        else:
            message = f"Research on {topic!r} failed"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "topic": self.topic, "timed_out": self.timed_out}


class CompositionError(SlideCopilotError):
    """Raised when a slide cannot be composed from research output."""

    code = "composition_error"


class AlreadyRunningError(SlideCopilotError):
    """Raised when starting a single-flight task that is already running."""

    code = "already_running"

    def __init__(self, task_name: str):
        self.task_name = task_name
        super().__init__(f"Task {task_name!r} is already running")


class SessionClosedError(SlideCopilotError):
    """Raised when using a session (or its task runner) after it was closed."""

    code = "session_closed"


class SessionConflictError(SlideCopilotError):
    """Raised when an existing session id is requested with different settings."""

    code = "session_conflict"

    def __init__(self, session_id: str, message: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id!r} already exists: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "session_id": self.session_id}
