"""Single-flight "generate next slide" workflow: research -> compose -> insert."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from .actions import ActionRegistry
from .document import Slide, SlideDocument
from .exceptions import AlreadyRunningError, SessionClosedError, SlideCopilotError
from .research_agent import ResearchAdapter, research_with_timeout

GENERATE_NEXT_SLIDE = "generate_next_slide"
MAX_TOPIC_LENGTH = 300


class TaskState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TaskStatus(BaseModel):
    task: str
    state: TaskState = TaskState.IDLE
    reason: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    topic: Optional[str] = None
    slide_index: Optional[int] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (TaskState.SUCCEEDED, TaskState.FAILED)


def presentation_topic_of(document: SlideDocument, presentation_topic: Optional[str] = None) -> str:
    """Explicit presentation topic, else the title of the first slide."""
    return (presentation_topic or "").strip() or document.slide_at(0).title.strip()


def derive_research_topic(document: SlideDocument, presentation_topic: Optional[str] = None) -> str:
    """Build a research topic from the presentation topic and the current slide."""
    current = document.current_slide()
    parts = []
    for part in (presentation_topic_of(document, presentation_topic), current.title.strip(), current.content.strip()):
        if part and part not in parts:
            parts.append(part)
    return " - ".join(parts)[:MAX_TOPIC_LENGTH]


class TaskRunner:
    """Runs at most one generate-next-slide workflow per document at a time.

    State machine: Idle -> Running -> {Succeeded, Failed}; terminal states go back
    to Idle on ``acknowledge()``, and ``start()`` is also accepted from them.

    Args:
        document: Document the composed slide is inserted into.
        registry: Registry holding the composition (and research schema) actions.
        research_adapter: Backend used for the research step.
        research_timeout: Seconds before a research call counts as failed.
        presentation_topic: Overall topic; defaults to the first slide's title.
        on_document_changed: Called after a slide was inserted.
    """

    def __init__(
        self,
        document: SlideDocument,
        registry: ActionRegistry,
        research_adapter: ResearchAdapter,
        *,
        research_timeout: Optional[float] = None,
        presentation_topic: Optional[str] = None,
        on_document_changed: Optional[Callable[[], None]] = None,
        compose_action: str = "composeSlide",
        research_action: str = "research",
        name: str = GENERATE_NEXT_SLIDE,
    ) -> None:
        self.name = name
        self.research_timeout = research_timeout
        self.presentation_topic = presentation_topic
        self.compose_action = compose_action
        self.research_action = research_action
        self._document = document
        self._registry = registry
        self._adapter = research_adapter
        self._on_document_changed = on_document_changed
        self._status = TaskStatus(task=name)
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.logger = logging.getLogger(f"{self.__class__.__name__}[{name}]")

    @property
    def status(self) -> TaskStatus:
        return self._status

    @property
    def state(self) -> TaskState:
        return self._status.state

    @property
    def is_running(self) -> bool:
        return self._status.state is TaskState.RUNNING

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, topic: Optional[str] = None) -> asyncio.Task:
        """Schedule the workflow and return its task (resolves to the final TaskStatus).

        Must be called from a running event loop.

        Raises:
            AlreadyRunningError: a workflow is still in flight
            SessionClosedError: the owning session has ended
        """
        if self._closed:
            raise SessionClosedError(f"Task {self.name!r} belongs to a closed session")
        if self.is_running:
            raise AlreadyRunningError(self.name)
        loop = asyncio.get_running_loop()

        self._status = TaskStatus(task=self.name, state=TaskState.RUNNING, topic=topic, started_at=time.time())
        self.logger.info("🚀 Starting workflow")
        self._task = loop.create_task(self._execute(topic), name=self.name)
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def run(self, topic: Optional[str] = None) -> TaskStatus:
        """Start the workflow and wait for it to finish."""
        return await self.start(topic)

    def acknowledge(self) -> TaskStatus:
        """Return the current status, resetting a terminal one to Idle."""
        status = self._status
        if status.is_terminal:
            self._status = TaskStatus(task=self.name)
        return status

    def close(self) -> None:
        """Discard any in-flight workflow; it will not touch the document."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self.logger.info("🛑 Cancelling in-flight workflow")
            self._task.cancel()

    async def aclose(self) -> None:
        self.close()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def _execute(self, topic: Optional[str]) -> TaskStatus:
        try:
            topic = topic or derive_research_topic(self._document, self.presentation_topic)
            self._status = self._status.model_copy(update={"topic": topic})
            if self.research_action in self._registry:
                # Same constraint the agent-facing research action declares
                self._registry.validate(self.research_action, {"topic": topic})

            research = await research_with_timeout(self._adapter, topic, self.research_timeout)
            self._ensure_open()

            composed = await self._registry.invoke(
                self.compose_action,
                {
                    "topic": topic,
                    "research": research.summary,
                    "presentationTopic": presentation_topic_of(self._document, self.presentation_topic),
                },
            )
            self._ensure_open()

            slide = composed if isinstance(composed, Slide) else Slide.model_validate(composed)
            index = self._document.insert_at(self._document.current_index + 1, slide)
            if self._on_document_changed is not None:
                self._on_document_changed()
        except asyncio.CancelledError:
            self._finish(TaskState.FAILED, reason="cancelled", error={"code": "cancelled", "message": "cancelled"})
            raise
        except SlideCopilotError as e:
            self.logger.warning(f"❌ Workflow failed: {e}")
            return self._finish(TaskState.FAILED, reason=str(e), error=e.to_dict())
        except Exception as e:
            self.logger.exception("❌ Workflow failed unexpectedly")
            return self._finish(
                TaskState.FAILED,
                reason=f"{type(e).__name__}: {e}",
                error={"code": type(e).__name__, "message": str(e)},
            )
        return self._finish(TaskState.SUCCEEDED, slide_index=index)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("Session closed while the workflow was running; result discarded")

    def _finish(self, state: TaskState, **fields: Any) -> TaskStatus:
        self._status = self._status.model_copy(update={"state": state, "finished_at": time.time(), **fields})
        self.logger.info(f"🏁 Workflow {state.value}" + (f": {fields['reason']}" if fields.get("reason") else ""))
        return self._status

    def _on_task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never reaches _execute's handlers
        if task is self._task and task.cancelled() and self.is_running:
            self._finish(TaskState.FAILED, reason="cancelled", error={"code": "cancelled", "message": "cancelled"})
