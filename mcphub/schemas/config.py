from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator


class CustomInstructions(BaseModel):
    """Per-server instructions appended to the active servers prompt"""
    model_config = ConfigDict(extra="forbid")

    text: Optional[StrictStr] = None
    disabled: Optional[StrictBool] = None

    @property
    def active(self) -> bool:
        return bool(self.text) and not self.disabled


class ServerConfig(BaseModel):
    """One entry of ``mcpServers``. Unknown keys are kept so writes never lose fields."""
    model_config = ConfigDict(extra="allow")

    # launch fields belong to the hub and are passed through unchecked
    command: Any = None
    args: Any = None
    env: Any = None
    disabled: Any = None
    disabled_tools: Optional[List[StrictStr]] = None
    custom_instructions: Optional[CustomInstructions] = None

    @field_validator("disabled_tools")
    @classmethod
    def _tool_names_not_empty(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is not None and any(name == "" for name in value):
            raise ValueError("tool names must be non-empty strings")
        return value


class ConfigFile(BaseModel):
    """The persisted server definitions document"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    mcp_servers: Dict[str, ServerConfig] = Field(alias="mcpServers")
