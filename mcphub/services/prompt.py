"""
Prompt rendering for chat integrations.

The active servers prompt summarises every connected server's tools and
resources; ``use_mcp_tool`` / ``access_mcp_resource`` describe the calling
convention. Result parsers turn hub responses into ``{text, images}``.
"""
from __future__ import annotations

import json
import os
import platform
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..schemas.config import ServerConfig
from ..schemas.hub import Resource, ServerRecord, Tool

DEFAULT_MIME_TYPE = "application/octet-stream"
TOOL_ERROR_PREFIX = "The tool run failed with error.\n"

HEADER = """MCP SERVERS

The Model Context Protocol (MCP) enables communication between the system and locally running MCP servers that provide additional tools and resources to extend your capabilities.

# Connected MCP Servers"""

NO_SERVERS = "(No MCP servers connected)"

USAGE_HINT = (
    "When a server is connected, you can use the server's tools via the `use_mcp_tool` tool, "
    "and access the server's resources via the `access_mcp_resource` tool."
)

USE_MCP_TOOL_EXAMPLE = """<use_mcp_tool>
<server_name>weather-server</server_name>
<tool_name>get_forecast</tool_name>
<arguments>
{
  "city": "San Francisco",
  "days": 5
}
</arguments>
</use_mcp_tool>"""

ACCESS_MCP_RESOURCE_EXAMPLE = """<access_mcp_resource>
<server_name>weather-server</server_name>
<uri>weather://san-francisco/current</uri>
</access_mcp_resource>"""

USE_MCP_TOOL_TEMPLATE = """## use_mcp_tool

Description: Request to use a tool provided by a connected MCP server. Each MCP server can provide multiple tools with different capabilities. Tools have defined input schemas that specify required and optional parameters.
Parameters:
- server_name: (required) The name of the MCP server providing the tool
- tool_name: (required) The name of the tool to execute
- arguments: (required) A JSON object containing the tool's input parameters, following the tool's input schema

Example: Requesting to use an MCP tool

{example}"""

ACCESS_MCP_RESOURCE_TEMPLATE = """## access_mcp_resource

Description: Request to access a resource provided by a connected MCP server. Resources represent data sources that can be used as context, such as files, API responses, or system information.
Parameters:
- server_name: (required) The name of the MCP server providing the resource
- uri: (required) The URI identifying the specific resource to access

Example: Requesting to access an MCP resource

{example}"""

MARKETPLACE_INSTALL_TEMPLATE = """Model Context Protocol (MCP) servers enable communication between LLMs and external systems by providing tools and resources through a standardized interface. This installation will set up an MCP server to extend the system's capabilities.

Task: Set up the MCP server from {github_url}

Current Config File Content:
{config_content}

Environment Details:
- Operating System: {os_info}
- MCP Servers Directory Path: {servers_path} (create subdirectories here if required)
- Config File Path: {config_file}

Server Details:
- Name: {name}
- MCP ID: {mcp_id} (use this as server name in config)
- GitHub URL: {github_url_or_na}

Installation Instructions:
1. Review README instructions below
2. Follow setup steps from README
3. Ask the user to provide any env variables or details required for the server configuration.
4. Update config at {config_file}
5. Ask the user to restart the hub with the updated config and to provide you with the mcp tool if not already provided.

README Content:
-------------
{readme}
-------------"""


def _indent(text: str, prefix: str) -> str:
    return text.replace("\n", "\n" + prefix)


def format_custom_instructions(name: str, server_config: Optional[ServerConfig]) -> str:
    instructions = server_config.custom_instructions if server_config else None
    if instructions is None or not instructions.active:
        return ""
    return f"\n\n### Instructions for `{name}` server\n\n{instructions.text}"


def format_tools(tools: Iterable[Tool]) -> str:
    tools = list(tools)
    if not tools:
        return ""
    result = "\n\n### Available Tools"
    for tool in tools:
        result += f"\n\n- {tool.name}: {tool.description or ''}"
        if tool.inputSchema:
            schema = json.dumps(tool.inputSchema, indent=2, ensure_ascii=False)
            result += "\n    Input Schema:\n    " + _indent(schema, "    ")
    return result


def format_resources(resources: Iterable[Resource]) -> str:
    resources = list(resources)
    if not resources:
        return ""
    result = "\n\n### Available Resources"
    for resource in resources:
        dumped = resource.model_dump(exclude_none=True)
        result += "\n\n" + json.dumps(dumped, indent=2, ensure_ascii=False)
    return result


def get_active_servers_prompt(
    servers: Iterable[ServerRecord],
    servers_config: Optional[Mapping[str, ServerConfig]] = None,
) -> str:
    """Render the connected servers section.

    Only servers that expose at least one tool or resource get a section.
    Callers pass the already filtered view (disabled tools removed).
    """
    servers = list(servers)
    servers_config = servers_config or {}
    if not servers:
        return f"{HEADER}\n\n{NO_SERVERS}"

    prompt = f"{HEADER}\n\n{USAGE_HINT}"
    for server in servers:
        capabilities = server.capabilities
        if not (capabilities.tools or capabilities.resources):
            continue
        prompt += f"\n\n## {server.name}"
        prompt += format_custom_instructions(server.name, servers_config.get(server.name))
        prompt += format_tools(capabilities.tools)
        prompt += format_resources(capabilities.resources)
    return prompt


def get_use_mcp_tool_prompt(example: Optional[str] = None) -> str:
    return USE_MCP_TOOL_TEMPLATE.format(example=example or USE_MCP_TOOL_EXAMPLE)


def get_access_mcp_resource_prompt(example: Optional[str] = None) -> str:
    return ACCESS_MCP_RESOURCE_TEMPLATE.format(example=example or ACCESS_MCP_RESOURCE_EXAMPLE)


def get_marketplace_server_prompt(
    details: Mapping[str, Any],
    config_file: str,
    config_content: Optional[str] = None,
) -> str:
    """Installation instructions for a marketplace entry."""
    github_url = details.get("githubUrl")
    uname = platform.uname()
    os_info = json.dumps(
        {"sysname": uname.system, "release": uname.release, "machine": uname.machine},
        ensure_ascii=False,
    )
    return MARKETPLACE_INSTALL_TEMPLATE.format(
        github_url=github_url or "unknown",
        github_url_or_na=github_url or "N/A",
        config_content=config_content or "{}",
        os_info=os_info,
        servers_path=os.path.join(os.path.expanduser("~"), ".mcphub", "servers"),
        config_file=config_file,
        name=details.get("name", ""),
        mcp_id=details.get("mcpId", ""),
        readme=details.get("readmeContent") or "No README available",
    )


def _result_of(response: Any) -> Dict[str, Any]:
    if not isinstance(response, dict):
        return {}
    result = response.get("result")
    return result if isinstance(result, dict) else {}


def parse_tool_response(response: Any) -> Dict[str, Any]:
    """Collapse a tool call response into ``{"text": str, "images": [...]}``."""
    result = _result_of(response)
    texts: List[str] = []
    images: List[Dict[str, Any]] = []
    for block in result.get("content") or []:
        if not isinstance(block, dict):
            continue
        kind = block.get("type")
        if kind == "text":
            texts.append(str(block.get("text", "")))
        elif kind == "image":
            images.append({"data": block.get("data"), "mimeType": block.get("mimeType") or DEFAULT_MIME_TYPE})

    text = "\n".join(texts)
    if result.get("isError"):
        text = TOOL_ERROR_PREFIX + text
    return {"text": text, "images": images}


def parse_resource_response(response: Any) -> Dict[str, Any]:
    """Collapse a resource read into ``{"text": str, "images": [...]}``; blobs count as images."""
    result = _result_of(response)
    texts: List[str] = []
    images: List[Dict[str, Any]] = []
    for content in result.get("contents") or []:
        if not isinstance(content, dict):
            continue
        if content.get("blob"):
            images.append({"data": content["blob"], "mimeType": content.get("mimeType") or DEFAULT_MIME_TYPE})
        elif content.get("text") is not None:
            texts.append(f"Resource {content.get('uri')}:\n{content['text']}")
    return {"text": "\n\n".join(texts), "images": images}
