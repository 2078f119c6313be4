from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

HUB_SERVER_ID = "mcp-hub"
READY_MESSAGE = "MCP_HUB_STARTED"


class ConnectionState(str, Enum):
    """Lifecycle of the connection between this client and the hub"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class ServerStatus(str, Enum):
    DISABLED = "disabled"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class CapabilityKind(str, Enum):
    TOOL = "tool"
    RESOURCE = "resource"
    RESOURCE_TEMPLATE = "resourceTemplate"


class Tool(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: Optional[str] = None
    inputSchema: Optional[Dict[str, Any]] = None


class Resource(BaseModel):
    model_config = ConfigDict(extra="allow")

    uri: str
    name: Optional[str] = None
    description: Optional[str] = None
    mimeType: Optional[str] = None


class ResourceTemplate(BaseModel):
    model_config = ConfigDict(extra="allow")

    uriTemplate: str
    name: Optional[str] = None
    description: Optional[str] = None
    mimeType: Optional[str] = None


class Capabilities(BaseModel):
    model_config = ConfigDict(extra="allow")

    tools: List[Tool] = Field(default_factory=list)
    resources: List[Resource] = Field(default_factory=list)
    resourceTemplates: List[ResourceTemplate] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.tools or self.resources or self.resourceTemplates)


class ServerRecord(BaseModel):
    """A downstream server as reported by the hub.

    ``status`` is kept as a plain string so statuses added by newer hub
    versions do not break parsing; compare against :class:`ServerStatus`.
    ``disabled_tools`` is a client side overlay taken from the config file.
    """
    model_config = ConfigDict(extra="allow")

    name: str
    status: str = ServerStatus.DISCONNECTED.value
    uptime: float = 0
    error: Optional[Any] = None
    capabilities: Capabilities = Field(default_factory=Capabilities)
    disabled_tools: List[str] = Field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return self.status == ServerStatus.CONNECTED.value

    def displayed_capabilities(self) -> Capabilities:
        """Capabilities a consumer may act on: empty unless connected, minus disabled tools."""
        if not self.is_connected:
            return Capabilities()
        disabled = set(self.disabled_tools)
        return Capabilities(
            tools=[tool for tool in self.capabilities.tools if tool.name not in disabled],
            resources=list(self.capabilities.resources),
            resourceTemplates=list(self.capabilities.resourceTemplates),
        )


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None
    server_id: Optional[str] = None
    servers: List[ServerRecord] = Field(default_factory=list)

    def identifies_hub(self) -> bool:
        return self.server_id == HUB_SERVER_ID and self.status == "ok"


class HubLogRecord(BaseModel):
    """One NDJSON line written by the hub process on stdout/stderr"""
    model_config = ConfigDict(extra="allow")

    type: Literal["info", "warn", "error", "debug"]
    message: str = ""
    code: Optional[str] = None
    data: Optional[Any] = None

    def signals_ready(self) -> bool:
        return (
            self.type == "info"
            and self.message == READY_MESSAGE
            and isinstance(self.data, dict)
            and self.data.get("status") == "ready"
        )
