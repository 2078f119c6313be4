"""Pydantic schema exports."""

from .config import ConfigFile, CustomInstructions, ServerConfig
from .hub import (
    Capabilities,
    CapabilityKind,
    ConnectionState,
    HealthResponse,
    HubLogRecord,
    Resource,
    ResourceTemplate,
    ServerRecord,
    ServerStatus,
    Tool,
)

__all__ = [
    "Capabilities",
    "CapabilityKind",
    "ConfigFile",
    "ConnectionState",
    "CustomInstructions",
    "HealthResponse",
    "HubLogRecord",
    "Resource",
    "ResourceTemplate",
    "ServerConfig",
    "ServerRecord",
    "ServerStatus",
    "Tool",
]
