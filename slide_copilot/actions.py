"""Action registry: schema-described operations the agent may invoke.

Each action declares its arguments with a type tag. Arguments are validated in
full before dispatch, so a handler only ever sees conformant, declared values.
Handlers receive snake_case keyword arguments projected from the camelCase wire
names (``backgroundImageDescription`` -> ``background_image_description``).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .exceptions import (
    DuplicateActionError,
    HandlerError,
    SlideCopilotError,
    UnknownActionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class ArgumentType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"

    def accepts(self, value: Any) -> bool:
        if self is ArgumentType.STRING:
            return isinstance(value, str)
        if self is ArgumentType.NUMBER:
            # JSON decoders let Infinity and NaN through
            return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
        if self is ArgumentType.BOOLEAN:
            return isinstance(value, bool)
        return isinstance(value, dict)


@dataclass(frozen=True)
class ArgumentSpec:
    name: str
    type: ArgumentType = ArgumentType.STRING
    description: str = ""
    required: bool = True
    min_length: Optional[int] = None

    @property
    def parameter(self) -> str:
        """Python keyword the handler receives this argument as."""
        return _CAMEL_BOUNDARY.sub("_", self.name).lower()

    def problems_with(self, arguments: Mapping[str, Any]) -> Optional[str]:
        if self.name not in arguments or arguments[self.name] is None:
            return "missing required argument" if self.required else None
        value = arguments[self.name]
        if not ArgumentType(self.type).accepts(value):
            return f"expected {ArgumentType(self.type).value}, got {type(value).__name__}"
        if self.min_length is not None and isinstance(value, str) and len(value.strip()) < self.min_length:
            return f"must be {self.min_length} characters or longer"
        return None

    def to_schema(self) -> Dict[str, Any]:
        schema = {
            "name": self.name,
            "type": ArgumentType(self.type).value,
            "description": self.description,
            "required": self.required,
        }
        if self.min_length is not None:
            schema["minLength"] = self.min_length
        return schema


@dataclass(frozen=True)
class ActionDescriptor:
    name: str
    description: str
    handler: Callable[..., Any]
    arguments: Sequence[ArgumentSpec] = field(default_factory=tuple)

    def validate(self, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return handler kwargs, or raise ValidationError listing every problem."""
        arguments = arguments or {}
        problems: List[Dict[str, str]] = []
        kwargs: Dict[str, Any] = {}
        for spec in self.arguments:
            problem = spec.problems_with(arguments)
            if problem:
                problems.append({"argument": spec.name, "problem": problem})
            elif arguments.get(spec.name) is not None:
                kwargs[spec.parameter] = arguments[spec.name]
        if problems:
            raise ValidationError(self.name, problems)
        return kwargs

    def to_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [spec.to_schema() for spec in self.arguments],
        }


@dataclass
class ActionResult:
    ok: bool
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    duration_ms: int = 0


class ActionRegistry:
    """Per-session mapping of action names to descriptors.

    Invocations are serialized through a single active-call guard because the
    document the handlers mutate is not internally synchronized.
    """

    def __init__(self) -> None:
        self._actions: Dict[str, ActionDescriptor] = {}
        self._call_guard = asyncio.Lock()

    def __contains__(self, name: str) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def names(self) -> List[str]:
        return list(self._actions)

    def register(self, descriptor: ActionDescriptor) -> None:
        if descriptor.name in self._actions:
            raise DuplicateActionError(descriptor.name)
        self._actions[descriptor.name] = descriptor
        logger.debug(f"Registered action {descriptor.name}")

    def replace(self, descriptor: ActionDescriptor) -> None:
        """Register or swap a descriptor in one step.

        Calls already in flight keep running the descriptor they looked up.
        """
        self._actions[descriptor.name] = descriptor
        logger.debug(f"Replaced action {descriptor.name}")

    def unregister(self, name: str) -> None:
        self._actions.pop(name, None)

    def get(self, name: str) -> ActionDescriptor:
        descriptor = self._actions.get(name)
        if descriptor is None:
            raise UnknownActionError(name, list(self._actions))
        return descriptor

    def validate(self, name: str, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return self.get(name).validate(arguments)

    def describe(self) -> List[Dict[str, Any]]:
        """Agent-facing schema for every registered action."""
        return [descriptor.to_schema() for descriptor in self._actions.values()]

    async def invoke(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Any:
        """Validate and run an action, returning the handler's result.

        Raises:
            UnknownActionError: no action registered under ``name``
            ValidationError: missing or mismatched arguments (handler not called)
            HandlerError: the handler itself failed
        """
        descriptor = self.get(name)
        kwargs = descriptor.validate(arguments)

        async with self._call_guard:
            logger.info(f"🛠️ Invoking action {name} with {sorted(kwargs)}")
            try:
                result = descriptor.handler(**kwargs)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.warning(f"❌ Action {name} failed: {type(e).__name__}: {e}")
                raise HandlerError(name, e) from e
        return result

    async def call(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ActionResult:
        """Like ``invoke`` but reports typed failures as a structured ActionResult."""
        start = time.time()
        try:
            result = await self.invoke(name, arguments)
        except SlideCopilotError as e:
            return ActionResult(ok=False, error=e.to_dict(), duration_ms=int((time.time() - start) * 1000))
        return ActionResult(ok=True, result=result, duration_ms=int((time.time() - start) * 1000))
