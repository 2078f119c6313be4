"""
Capability invocation.

A :class:`CapabilityInvoker` runs one tool, resource or resource template of
one server. The kind selects a handler from ``HANDLERS`` which knows how to
list, validate and convert parameters, dispatch the call through the
:class:`~mcphub.services.hub.HubClient` and normalise the response.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel

from ..schemas.hub import CapabilityKind, Resource, ResourceTemplate, Tool
from ..utils.errors import MCPError, runtime_error
from . import prompt as prompts
from .type_handlers import as_text, handler_for, schema_type

logger = logging.getLogger("mcphub.capabilities")

REQUIRED_PARAMETER = "Required parameter"
INVALID_PARAMETERS = "Some required parameters are missing or invalid"


@dataclass
class Param:
    name: str
    type: Optional[str]
    required: bool = False
    description: Optional[str] = None
    default: Any = None
    schema: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationOutcome:
    ok: bool
    error: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class CapabilityResult:
    text: str = ""
    images: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "images": list(self.images)}


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


class CapabilityHandler:
    """Behaviour shared by every capability kind."""

    kind: CapabilityKind
    model: Type[BaseModel]
    busy_message = "Operation already in progress"

    def __init__(self, hub, server_name: str, info: Union[BaseModel, Mapping[str, Any]]) -> None:
        self.hub = hub
        self.server_name = server_name
        self.info = info if isinstance(info, BaseModel) else self.model.model_validate(dict(info))

    @property
    def name(self) -> str:
        return getattr(self.info, "name", None) or ""

    def params(self) -> List[Param]:
        return []

    def validate(self, values: Mapping[str, Any]) -> ValidationOutcome:
        errors: Dict[str, str] = {}
        for param in self.params():
            value = values.get(param.name)
            if _is_empty(value):
                if param.required:
                    errors[param.name] = REQUIRED_PARAMETER
                continue
            message = self.validate_param(param, value)
            if message:
                errors[param.name] = message
        if errors:
            return ValidationOutcome(ok=False, error=INVALID_PARAMETERS, errors=errors)
        return ValidationOutcome(ok=True)

    def validate_param(self, param: Param, value: Any) -> Optional[str]:
        return None

    def convert(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {name: value for name, value in values.items() if not _is_empty(value)}

    def check_available(self) -> Optional[MCPError]:
        record = self.hub.state.get_server(self.server_name)
        if record is None or not record.is_connected:
            return runtime_error(
                "OPERATION_FAILED",
                f"Server {self.server_name} is not connected",
                {"server": self.server_name, "status": record.status if record else None},
            )
        return None

    def dispatch(self, arguments: Dict[str, Any], timeout_ms: Optional[int] = None) -> asyncio.Task:
        raise NotImplementedError(f"dispatch() not implemented for {self.kind.value}")

    def normalize_result(self, response: Any) -> CapabilityResult:
        return CapabilityResult(**prompts.parse_resource_response(response))


class ToolHandler(CapabilityHandler):
    kind = CapabilityKind.TOOL
    model = Tool
    busy_message = "Tool run already in progress"

    def params(self) -> List[Param]:
        """Required parameters first, each group sorted by name."""
        schema = self.info.inputSchema or {}
        properties = schema.get("properties") or {}
        required = set(schema.get("required") or [])
        params = [
            Param(
                name=name,
                type=schema_type(prop),
                required=name in required,
                description=prop.get("description") if isinstance(prop, dict) else None,
                default=prop.get("default") if isinstance(prop, dict) else None,
                schema=prop if isinstance(prop, dict) else {},
            )
            for name, prop in properties.items()
        ]
        params.sort(key=lambda param: (not param.required, param.name))
        return params

    def validate_param(self, param: Param, value: Any) -> Optional[str]:
        if not param.schema or param.type is None:
            return "Invalid parameter schema"
        handler = handler_for(param.schema)
        if handler is None:
            return f"Unknown parameter type: {param.type}"
        text = as_text(value)
        if not handler.validate(text, param.schema):
            return f"Invalid {param.type} value: {text}"
        return None

    def convert(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        known = {param.name: param for param in self.params()}
        converted: Dict[str, Any] = {}
        for name, value in values.items():
            if _is_empty(value):
                continue
            param = known.get(name)
            handler = handler_for(param.schema) if param else None
            converted[name] = handler.convert(as_text(value), param.schema) if handler else value
        return converted

    def check_available(self) -> Optional[MCPError]:
        err = super().check_available()
        if err is not None:
            return err
        record = self.hub.state.get_server(self.server_name)
        if self.name in record.disabled_tools:
            return runtime_error(
                "OPERATION_FAILED",
                f"Tool {self.name} is disabled on server {self.server_name}",
                {"server": self.server_name, "tool": self.name},
            )
        return None

    def dispatch(self, arguments: Dict[str, Any], timeout_ms: Optional[int] = None) -> asyncio.Task:
        return self.hub.call_tool(self.server_name, self.name, arguments, timeout_ms=timeout_ms)

    def normalize_result(self, response: Any) -> CapabilityResult:
        return CapabilityResult(**prompts.parse_tool_response(response))


class ResourceHandler(CapabilityHandler):
    kind = CapabilityKind.RESOURCE
    model = Resource
    busy_message = "Resource access is already in progress"

    @property
    def name(self) -> str:
        return self.info.name or self.info.uri

    def dispatch(self, arguments: Dict[str, Any], timeout_ms: Optional[int] = None) -> asyncio.Task:
        return self.hub.access_resource(self.server_name, self.info.uri, timeout_ms=timeout_ms)


class ResourceTemplateHandler(CapabilityHandler):
    kind = CapabilityKind.RESOURCE_TEMPLATE
    model = ResourceTemplate
    busy_message = "Resource template access is already in progress"

    @property
    def name(self) -> str:
        return self.info.name or self.info.uriTemplate

    def params(self) -> List[Param]:
        return [
            Param(
                name="uri",
                type="string",
                required=True,
                description=f"URI matching {self.info.uriTemplate}",
                schema={"type": "string"},
            )
        ]

    def dispatch(self, arguments: Dict[str, Any], timeout_ms: Optional[int] = None) -> asyncio.Task:
        return self.hub.access_resource(self.server_name, arguments["uri"], timeout_ms=timeout_ms)


HANDLERS: Dict[CapabilityKind, Type[CapabilityHandler]] = {
    CapabilityKind.TOOL: ToolHandler,
    CapabilityKind.RESOURCE: ResourceHandler,
    CapabilityKind.RESOURCE_TEMPLATE: ResourceTemplateHandler,
}

Outcome = Tuple[Optional[CapabilityResult], Optional[MCPError]]


class CapabilityInvoker:
    """Runs one capability, one invocation at a time."""

    def __init__(
        self,
        hub,
        server_name: str,
        kind: Union[CapabilityKind, str],
        info: Union[BaseModel, Mapping[str, Any]],
    ) -> None:
        self.kind = CapabilityKind(kind)
        self.handler = HANDLERS[self.kind](hub, server_name, info)
        self.is_executing = False
        self.errors: Dict[str, str] = {}
        self.error: Optional[str] = None
        self.result: Optional[CapabilityResult] = None
        self.last_error: Optional[MCPError] = None

    @classmethod
    def for_tool(cls, hub, server_name: str, tool_name: str) -> "CapabilityInvoker":
        record = hub.state.get_server(server_name)
        tool = next((t for t in record.capabilities.tools if t.name == tool_name), None) if record else None
        if tool is None:
            raise runtime_error(
                "RESOURCE_ERROR",
                f"Tool {tool_name} not found on server {server_name}",
                {"server": server_name, "tool": tool_name},
            )
        return cls(hub, server_name, CapabilityKind.TOOL, tool)

    @property
    def server_name(self) -> str:
        return self.handler.server_name

    def params(self) -> List[Param]:
        return self.handler.params()

    def validate(self, values: Optional[Mapping[str, Any]] = None) -> ValidationOutcome:
        outcome = self.handler.validate(values or {})
        self.errors = dict(outcome.errors)
        self.error = outcome.error
        return outcome

    def execute(
        self,
        values: Optional[Mapping[str, Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
        callback: Optional[Callable[[Optional[CapabilityResult], Optional[MCPError]], None]] = None,
    ) -> Optional["asyncio.Task[Outcome]"]:
        """Validate, convert and dispatch.

        Returns a task resolving to ``(CapabilityResult, None)`` or
        ``(None, MCPError)``, or ``None`` when an invocation is still running.
        """
        if self.is_executing:
            logger.warning("%s (%s on %s)", self.handler.busy_message, self.handler.name, self.server_name)
            return None

        values = dict(values or {})
        refusal = self.handler.check_available()
        if refusal is None:
            outcome = self.validate(values)
            if not outcome.ok:
                refusal = runtime_error(
                    "OPERATION_FAILED",
                    outcome.error or INVALID_PARAMETERS,
                    {"server": self.server_name, "capability": self.handler.name, "errors": outcome.errors},
                )

        loop = asyncio.get_running_loop()
        if refusal is not None:
            self.last_error = refusal
            task = loop.create_task(self._refused(refusal))
        else:
            arguments = self.handler.convert(values)
            logger.debug("Executing %s %s on %s with %s", self.kind.value, self.handler.name, self.server_name, arguments)
            self.is_executing = True
            self.result = None
            self.last_error = None
            task = loop.create_task(self._run(arguments, timeout_ms))
            task.add_done_callback(self._finished)

        if callback is not None:
            task.add_done_callback(lambda done: self._deliver(callback, done))
        return task

    async def _refused(self, err: MCPError) -> Outcome:
        return None, err

    async def _run(self, arguments: Dict[str, Any], timeout_ms: Optional[int]) -> Outcome:
        response, err = await self.handler.dispatch(arguments, timeout_ms)
        if err is not None:
            self.last_error = err
            return None, err
        self.result = self.handler.normalize_result(response)
        return self.result, None

    def _finished(self, task: asyncio.Task) -> None:
        self.is_executing = False

    def _deliver(self, callback, task: asyncio.Task) -> None:
        if task.cancelled():
            result, err = None, runtime_error("OPERATION_FAILED", "Invocation cancelled", {"server": self.server_name})
        else:
            result, err = task.result()
        try:
            callback(result, err)
        except Exception:
            logger.exception("Callback for %s failed", self.handler.name)
