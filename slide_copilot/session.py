"""Per-session wiring of the document, readable context, actions and task runner."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from copilot_shared.config import Settings, get_settings

from .actions import ActionDescriptor, ActionRegistry, ActionResult, ArgumentSpec, ArgumentType
from .composer import SlideComposer
from .document import Slide, SlideDocument, SlideLike
from .exceptions import SessionClosedError, SessionConflictError
from .readable_context import ReadableContextStore, publish_document_state
from .research_agent import RESEARCH_TOPIC_MIN_LENGTH, LLMResearchAdapter, ResearchAdapter, research_with_timeout
from .task_runner import TaskRunner

logger = logging.getLogger(__name__)

SLIDE_ARGUMENTS = (
    ArgumentSpec("title", ArgumentType.STRING, "The title of the slide."),
    ArgumentSpec("content", ArgumentType.STRING, "The text content of the slide."),
    ArgumentSpec(
        "backgroundImageDescription",
        ArgumentType.STRING,
        "What to display in the background of the slide (i.e. 'dog' or 'house').",
    ),
    ArgumentSpec("spokenNarration", ArgumentType.STRING, "The text to read while presenting the slide."),
)


class Composer(Protocol):
    async def compose(self, *, topic: str, research: str, presentation_topic: str) -> Slide:
        ...


class CopilotSession:
    """Owns one slide document and everything the agent uses to work on it.

    Args:
        session_id: Identifier; generated when omitted.
        research_adapter: Research backend; defaults to the LLM-backed adapter.
        composer: Slide composer; defaults to the LLM-backed composer.
        settings: Settings to read timeouts and providers from.
        seed: First slide of the document; defaults to the welcome slide.
        presentation_topic: Overall topic generated slides must relate to.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        *,
        research_adapter: Optional[ResearchAdapter] = None,
        composer: Optional[Composer] = None,
        settings: Optional[Settings] = None,
        seed: Optional[SlideLike] = None,
        presentation_topic: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or f"deck_{uuid.uuid4().hex[:12]}"
        self.settings = settings or get_settings()
        self.research_adapter = research_adapter or LLMResearchAdapter.from_settings(self.settings)
        self.composer = composer or SlideComposer.from_settings(self.settings)
        self.document = SlideDocument(seed)
        self.context = ReadableContextStore()
        self.registry = ActionRegistry()
        self.runner = TaskRunner(
            self.document,
            self.registry,
            self.research_adapter,
            research_timeout=self.settings.research_timeout_seconds,
            presentation_topic=presentation_topic,
            on_document_changed=self.publish_state,
        )
        self._closed = False

        for descriptor in self._default_actions():
            self.registry.register(descriptor)
        self.publish_state()
        logger.info(f"📄 Session {self.session_id} ready with actions {self.registry.names}")

    def __repr__(self) -> str:
        return f"CopilotSession({self.session_id!r}, {self.document!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def presentation_topic(self) -> Optional[str]:
        return self.runner.presentation_topic

    def publish_state(self) -> None:
        publish_document_state(self.context, self.document)

    async def invoke(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Any:
        self._ensure_open()
        return await self.registry.invoke(name, arguments)

    async def call(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ActionResult:
        if self._closed:
            return ActionResult(ok=False, error=SessionClosedError(f"Session {self.session_id} is closed").to_dict())
        return await self.registry.call(name, arguments)

    async def close(self) -> None:
        """End the session; an in-flight workflow is discarded without touching the document."""
        if self._closed:
            return
        self._closed = True
        await self.runner.aclose()
        logger.info(f"🛑 Session {self.session_id} closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"Session {self.session_id} is closed")

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    async def _research(self, topic: str) -> str:
        result = await research_with_timeout(self.research_adapter, topic, self.settings.research_timeout_seconds)
        return result.summary

    def _append_slide(self, **fields: str) -> Dict[str, Any]:
        index = self.document.append(Slide(**fields))
        self.publish_state()
        return {"index": index, "slide": self.document.slide_at(index).to_wire()}

    def _update_slide(self, **fields: str) -> Dict[str, Any]:
        index = self.document.current_index
        updated = self.document.update_at(index, fields)
        self.publish_state()
        return {"index": index, "slide": updated.to_wire()}

    def _delete_slide(self) -> Dict[str, Any]:
        removed = self.document.delete_at(self.document.current_index)
        self.publish_state()
        return {"deleted": removed.to_wire(), "currentIndex": self.document.current_index}

    def _navigate_slides(self, delta: float) -> Dict[str, Any]:
        index = self.document.navigate(int(delta))
        self.publish_state()
        return {"currentIndex": index, "slideCount": len(self.document)}

    async def _compose_slide(self, topic: str, research: str, presentation_topic: str) -> Dict[str, str]:
        slide = await self.composer.compose(topic=topic, research=research, presentation_topic=presentation_topic)
        return slide.to_wire()

    def _generate_next_slide(self, topic: Optional[str] = None) -> Dict[str, Any]:
        self.runner.start(topic)
        return self.runner.status.model_dump(mode="json")

    def _default_actions(self) -> List[ActionDescriptor]:
        return [
            ActionDescriptor(
                name="research",
                description=(
                    "Call this function to conduct research on a certain topic. "
                    "Respect other notes about when to call this function"
                ),
                handler=self._research,
                arguments=(
                    ArgumentSpec(
                        "topic",
                        ArgumentType.STRING,
                        f"The topic to research. {RESEARCH_TOPIC_MIN_LENGTH} characters or longer.",
                        min_length=RESEARCH_TOPIC_MIN_LENGTH,
                    ),
                ),
            ),
            ActionDescriptor(
                name="appendSlide",
                description="Add a slide after all the existing slides. Call this function to add a new slide to the end of the presentation.",
                handler=self._append_slide,
                arguments=SLIDE_ARGUMENTS,
            ),
            ActionDescriptor(
                name="updateSlide",
                description="Update the current slide.",
                handler=self._update_slide,
                arguments=SLIDE_ARGUMENTS,
            ),
            ActionDescriptor(
                name="deleteSlide",
                description="Delete the current slide. Only possible once more than one slide exists.",
                handler=self._delete_slide,
            ),
            ActionDescriptor(
                name="navigateSlides",
                description="Move to another slide, e.g. delta 1 for the next slide and -1 for the previous one.",
                handler=self._navigate_slides,
                arguments=(ArgumentSpec("delta", ArgumentType.NUMBER, "How many slides to move by."),),
            ),
            ActionDescriptor(
                name="composeSlide",
                description="Write a slide about a topic from research notes without changing the presentation.",
                handler=self._compose_slide,
                arguments=(
                    ArgumentSpec("topic", ArgumentType.STRING, "Topic of the new slide."),
                    ArgumentSpec("research", ArgumentType.STRING, "Research notes to ground the slide on."),
                    ArgumentSpec("presentationTopic", ArgumentType.STRING, "Overall topic of the presentation."),
                ),
            ),
            ActionDescriptor(
                name="generateNextSlide",
                description="Research and write a new slide right after the current one. Runs in the background.",
                handler=self._generate_next_slide,
                arguments=(
                    ArgumentSpec(
                        "topic",
                        ArgumentType.STRING,
                        "Optional topic to research; derived from the presentation when omitted.",
                        required=False,
                        min_length=RESEARCH_TOPIC_MIN_LENGTH,
                    ),
                ),
            ),
        ]


class SessionManager:
    """In-memory registry of live sessions. Sessions are not persisted."""

    def __init__(self, session_factory: Callable[..., CopilotSession] = CopilotSession) -> None:
        self._session_factory = session_factory
        self._sessions: Dict[str, CopilotSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def ensure(self, session_id: Optional[str] = None, **kwargs: Any) -> CopilotSession:
        """Return the session for ``session_id``, creating it when missing.

        Raises:
            SessionConflictError: the session exists with a different presentation topic
        """
        if session_id and session_id in self._sessions:
            session = self._sessions[session_id]
            requested = kwargs.get("presentation_topic")
            if requested and requested != session.presentation_topic:
                raise SessionConflictError(
                    session_id, f"presentation topic is {session.presentation_topic!r}, not {requested!r}"
                )
            return session
        session = self._session_factory(session_id, **kwargs)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> CopilotSession:
        return self._sessions[session_id]

    async def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)


session_manager = SessionManager()
