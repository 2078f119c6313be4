"""
HubClient - connection to one local mcp-hub process.

Lifecycle::

    disconnected -> connecting -> connected -> disconnecting -> disconnected
                         \\-> disconnected (failed start)

``start()`` attaches to a hub already answering on the port, otherwise it
spawns one and waits for the ``MCP_HUB_STARTED`` record. Once ready the
client fetches the server list, registers its ``client_id`` and calls
``on_ready`` exactly once. ``stop()`` unregisters (best effort) without
terminating the process: a hub may be shared by several clients and exits by
itself after the last one leaves.
"""
from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union
from urllib.parse import quote

from pydantic import ValidationError

from ..schemas.hub import CapabilityKind, ConnectionState, HealthResponse, HubLogRecord, ServerRecord, ServerStatus
from ..utils.errors import ErrorCategory, MCPError, marketplace_error, server_error, setup_error
from ..utils.http_client import QUICK_TIMEOUT_MS, RESOURCE_TIMEOUT_MS, TOOL_TIMEOUT_MS, HubHttpClient
from . import prompt as prompts
from .config_store import SERVERS_KEY, ConfigStore
from .process import HubProcess, log_record, parse_output_line, record_to_error
from .state import LogEntry, MarketplaceStatus, StateStore

logger = logging.getLogger("mcphub.hub")

ReadyCallback = Callable[["HubClient"], None]
ErrorCallback = Callable[[MCPError], None]

TOOL_LIST_CHANGED = "TOOL_LIST_CHANGED"
RESOURCE_LIST_CHANGED = "RESOURCE_LIST_CHANGED"


def generate_client_id() -> str:
    return f"{os.getpid()}_{int(time.time())}_{random.randint(0, 2 ** 31 - 1)}"


@dataclass
class StartOptions:
    on_ready: Optional[ReadyCallback] = None
    on_error: Optional[ErrorCallback] = None
    generation: int = 0

    def ready(self, hub: "HubClient") -> None:
        if self.on_ready is not None:
            try:
                self.on_ready(hub)
            except Exception:
                logger.exception("on_ready callback failed")

    def error(self, err: MCPError) -> None:
        if self.on_error is not None:
            try:
                self.on_error(err)
            except Exception:
                logger.exception("on_error callback failed")


class HubClient:
    """Client side of one hub connection, sharing a :class:`StateStore` with its consumers."""

    def __init__(
        self,
        port: int,
        config_path: Union[str, Path],
        state: Optional[StateStore] = None,
        *,
        command: Union[str, Sequence[str]] = "mcp-hub",
        host: str = "localhost",
        quick_timeout_ms: int = QUICK_TIMEOUT_MS,
        tool_timeout_ms: int = TOOL_TIMEOUT_MS,
        resource_timeout_ms: int = RESOURCE_TIMEOUT_MS,
        http: Optional[HubHttpClient] = None,
    ) -> None:
        self._port = port
        self._config_path = Path(config_path).expanduser()
        self._client_id = generate_client_id()
        self.state = state if state is not None else StateStore()
        self.command: List[str] = [command] if isinstance(command, str) else list(command)
        self.quick_timeout_ms = quick_timeout_ms
        self.tool_timeout_ms = tool_timeout_ms
        self.resource_timeout_ms = resource_timeout_ms

        self.config_store = ConfigStore(self._config_path)
        self.http = http or HubHttpClient(
            port,
            host=host,
            state=self.state,
            ready_check=self.is_ready,
            timeout_ms=quick_timeout_ms,
        )

        self.is_owner = False
        self.is_shutting_down = False
        self._process: Optional[HubProcess] = None
        self._ready_handled = False
        self._generation = 0
        self._unregister_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        self.state.update_server(status=ConnectionState.DISCONNECTED, pid=None, started_at=None)

    @property
    def port(self) -> int:
        return self._port

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def connection_state(self) -> ConnectionState:
        return self.state.server.status

    @property
    def process(self) -> Optional[HubProcess]:
        return self._process

    def is_ready(self) -> bool:
        return self.connection_state == ConnectionState.CONNECTED

    def ensure_ready(self) -> bool:
        if not self.is_ready():
            logger.error("Hub not ready. Wait for on_ready before using the hub.")
            return False
        return True

    def _set_state(self, status: ConnectionState, **fields: Any) -> None:
        self.state.update_server(status=status, **fields)

    def _is_current(self, opts: StartOptions) -> bool:
        """False once stop() has run after the start() that created ``opts``."""
        return opts.generation == self._generation

    def _spawn_background(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(
        self,
        on_ready: Optional[ReadyCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Attach to a running hub or spawn one.

        When attaching, ``on_ready`` has been called by the time this returns.
        When spawning, readiness arrives later through the process output.
        """
        if self.connection_state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            logger.debug("start() ignored, hub is %s", self.connection_state.value)
            return

        self._generation += 1
        opts = StartOptions(on_ready, on_error, self._generation)
        self.is_shutting_down = False
        self._ready_handled = False
        self._set_state(ConnectionState.CONNECTING)

        attached = await self.check_server()
        if not self._is_current(opts):
            logger.debug("start() abandoned, stop() was called during the health check")
            return
        if attached:
            logger.info("Attaching to hub already running on port %s", self.port)
            self.is_owner = False
            await self._handle_server_ready(opts)
            return

        self.is_owner = True
        process = HubProcess(
            [*self.command, "--port", str(self.port), "--config", str(self.config_path)],
            on_line=lambda stream, line: self._handle_output(process, opts, stream, line),
            on_exit=lambda code: self._handle_exit(process, opts, code),
        )
        self._process = process
        try:
            pid = await process.start()
        except MCPError as err:
            if not self._is_current(opts):
                return
            self._process = None
            self.is_owner = False
            self._set_state(ConnectionState.DISCONNECTED, pid=None)
            self.state.add_error(err)
            opts.error(err)
            return
        if not self._is_current(opts):
            logger.debug("Hub process %s started after stop(), leaving it detached", pid)
            return
        self.state.update_server(pid=pid)

    async def stop(self) -> None:
        self.is_shutting_down = True
        self._generation += 1
        if self.connection_state == ConnectionState.CONNECTED:
            # issued while still connected so the ready gate lets it through
            task = self.http.request(
                "POST",
                "client/unregister",
                body={"clientId": self.client_id},
                record_errors=False,
                callback=self._on_unregistered,
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            self._unregister_task = task
            self._set_state(ConnectionState.DISCONNECTING)
        self._set_state(ConnectionState.DISCONNECTED, pid=None)
        self._process = None
        self._ready_handled = False
        self.is_owner = False
        self.is_shutting_down = False

    def _on_unregistered(self, result: Any, err: Optional[MCPError]) -> None:
        if err is not None:
            logger.debug("Unregister failed (ignored): %s", err.summary)
        else:
            logger.debug("Client %s unregistered", self.client_id)

    async def restart(
        self,
        on_ready: Optional[ReadyCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> bool:
        """Restart when this client owns the hub process, otherwise only refresh."""
        if not self.is_owner:
            logger.info("Hub is not owned by this client, refreshing instead of restarting")
            return await self.refresh()
        await self.stop()
        await self._wait_unregistered()
        self.state.reset()
        await self.start(on_ready, on_error)
        return True

    async def _wait_unregistered(self) -> None:
        """Let the unregister from stop() reach the hub before registering again."""
        task, self._unregister_task = self._unregister_task, None
        if task is None or task.done():
            return
        done, _ = await asyncio.wait({task}, timeout=self.quick_timeout_ms / 1000)
        if not done:
            logger.warning("Unregister still pending after %sms, restarting anyway", self.quick_timeout_ms)

    async def aclose(self, timeout: float = 1.0) -> None:
        """Let pending background requests settle, then close the HTTP pool."""
        pending = [task for task in self._background if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)
        await self.http.aclose()

    # ------------------------------------------------------------------
    # Process output
    # ------------------------------------------------------------------
    def _handle_output(self, process: HubProcess, opts: StartOptions, stream: str, line: str) -> None:
        record = parse_output_line(line)
        if record is None:
            self.state.add_log(LogEntry(type="info" if stream == "stdout" else "warn", message=line, stream=stream))
            logger.debug("hub %s: %s", stream, line)
            return

        self.state.add_log(
            LogEntry(
                type=record.type,
                message=record.message or record.code or "",
                code=record.code,
                data=record.data,
                stream=stream,
            )
        )
        if record.type == "error":
            err = record_to_error(record)
            self.state.add_error(err)
            opts.error(err)
            return

        log_record(record)
        if record.signals_ready():
            if process is self._process:
                self._spawn_background(self._handle_server_ready(opts))
            return
        if record.code in (TOOL_LIST_CHANGED, RESOURCE_LIST_CHANGED) and self.is_ready():
            self._spawn_background(self._handle_change_record(record))

    def _handle_exit(self, process: HubProcess, opts: StartOptions, code: int) -> None:
        if process is not self._process:
            logger.debug("Detached hub process exited with code %s", code)
            return
        was_ready = self._ready_handled
        self._process = None
        self._ready_handled = False
        self.is_owner = False

        if not was_ready:
            err = setup_error(
                "SERVER_START",
                f"Hub process exited with code {code} before becoming ready",
                {"exit_code": code, "command": process.argv},
            )
            self.state.add_error(err)
            opts.error(err)
        elif code != 0:
            err = server_error("CONNECTION", "Server exited unexpectedly", {"exit_code": code})
            self.state.add_error(err)
            opts.error(err)
        else:
            logger.info("Hub process exited")
        self._set_state(ConnectionState.DISCONNECTED, pid=None)

    async def _handle_change_record(self, record: HubLogRecord) -> None:
        data = record.data if isinstance(record.data, dict) else {}
        name = data.get("server")
        if not name:
            await self.refresh()
            return
        if record.code == TOOL_LIST_CHANGED and isinstance(data.get("tools"), list):
            self.handle_capability_change(name, CapabilityKind.TOOL, data["tools"])
        elif record.code == RESOURCE_LIST_CHANGED and (
            isinstance(data.get("resources"), list) or isinstance(data.get("resourceTemplates"), list)
        ):
            if isinstance(data.get("resources"), list):
                self.handle_capability_change(name, CapabilityKind.RESOURCE, data["resources"])
            if isinstance(data.get("resourceTemplates"), list):
                self.handle_capability_change(name, CapabilityKind.RESOURCE_TEMPLATE, data["resourceTemplates"])
        else:
            await self.refresh()

    async def _handle_server_ready(self, opts: StartOptions) -> None:
        if self._ready_handled or not self._is_current(opts):
            return
        self._ready_handled = True
        self._set_state(
            ConnectionState.CONNECTED,
            started_at=time.time(),
            pid=self._process.pid if self._process else None,
        )

        result, err = await self.get_health()
        if not self._is_current(opts):
            return
        if err is not None:
            self.state.add_error(server_error("HEALTH_CHECK", "Health check failed", {"error": err.to_dict()}))
        else:
            self._apply_health(result)

        result, err = await self.register_client()
        if not self._is_current(opts):
            logger.debug("Registration finished after stop(), on_ready not called")
            return
        if err is not None:
            reg_err = server_error("CONNECTION", "Client registration failed", {"error": err.to_dict()})
            self.state.add_error(reg_err)
            opts.error(reg_err)
            return

        logger.info("Registered client %s with hub on port %s", self.client_id, self.port)
        self._spawn_background(self.get_marketplace_catalog())
        opts.ready(self)

    def _apply_health(self, result: Any) -> bool:
        try:
            health = HealthResponse.model_validate(result or {})
        except ValidationError as exc:
            self.state.add_error(
                server_error(
                    "HEALTH_CHECK",
                    "Invalid health response",
                    {"errors": exc.errors(include_url=False, include_input=False, include_context=False)},
                )
            )
            return False
        self.state.set_servers(health.servers)
        return True

    # ------------------------------------------------------------------
    # Raw endpoints
    # ------------------------------------------------------------------
    async def check_server(self) -> bool:
        """True when already connected or a hub answers the health probe."""
        if self.is_ready():
            return True
        result, err = await self.http.request(
            "GET",
            "health",
            timeout_ms=self.quick_timeout_ms,
            skip_ready_check=True,
            record_errors=False,
        )
        if err is not None:
            logger.debug("Health probe: %s", err.summary)
            return False
        try:
            return HealthResponse.model_validate(result).identifies_hub()
        except ValidationError:
            return False

    def register_client(self, callback=None) -> asyncio.Task:
        return self.http.request("POST", "client/register", body={"clientId": self.client_id}, callback=callback)

    def get_health(self, callback=None) -> asyncio.Task:
        return self.http.request("GET", "health", callback=callback)

    def fetch_servers(self, callback=None) -> asyncio.Task:
        return self.http.request("GET", "servers", callback=callback)

    def get_server_info(self, name: str, callback=None) -> asyncio.Task:
        return self.http.request("GET", f"servers/{quote(name, safe='')}/info", callback=callback)

    def call_tool(
        self,
        server_name: str,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
        callback=None,
    ) -> asyncio.Task:
        return self.http.request(
            "POST",
            f"servers/{quote(server_name, safe='')}/tools",
            body={"tool": tool_name, "arguments": arguments or {}},
            timeout_ms=timeout_ms or self.tool_timeout_ms,
            callback=callback,
        )

    def access_resource(
        self,
        server_name: str,
        uri: str,
        *,
        timeout_ms: Optional[int] = None,
        callback=None,
    ) -> asyncio.Task:
        return self.http.request(
            "POST",
            f"servers/{quote(server_name, safe='')}/resources",
            body={"uri": uri},
            timeout_ms=timeout_ms or self.resource_timeout_ms,
            callback=callback,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    async def refresh(self) -> bool:
        """Re-read the server list from ``health`` and publish it."""
        result, err = await self.get_health()
        if err is not None:
            return False
        if not self._apply_health(result):
            return False
        self._emit_servers_updated()
        return True

    async def hard_refresh(self) -> bool:
        """Ask the hub to rediscover every server's capabilities, then publish them."""
        result, err = await self.http.request("GET", "refresh", timeout_ms=self.tool_timeout_ms)
        if err is not None:
            return False
        if not self._apply_health(result):
            return False
        self._emit_servers_updated()
        return True

    # ------------------------------------------------------------------
    # Server management
    # ------------------------------------------------------------------
    async def start_mcp_server(self, name: str):
        self.state.set_server_status(name, ServerStatus.CONNECTING)
        self._persist(name, {"disabled": False})
        outcome = await self.http.request(
            "POST",
            f"servers/{quote(name, safe='')}/start",
            timeout_ms=self.tool_timeout_ms,
        )
        await self.refresh()
        return outcome

    async def stop_mcp_server(self, name: str, disable: bool = False):
        self.state.set_server_status(name, ServerStatus.DISCONNECTING)
        self._persist(name, {"disabled": disable})
        outcome = await self.http.request(
            "POST",
            f"servers/{quote(name, safe='')}/stop",
            query={"disable": "true"} if disable else None,
            timeout_ms=self.tool_timeout_ms,
        )
        await self.refresh()
        return outcome

    def _persist(self, name: str, patch: Optional[Dict[str, Any]]) -> bool:
        try:
            parsed = self.config_store.update(name, patch)
        except MCPError as err:
            self.state.add_error(err)
            return False
        self.state.set_config(parsed.model)
        return True

    def update_server_config(self, name: str, patch: Optional[Dict[str, Any]]) -> bool:
        """Deep-merge ``patch`` into the server's config entry (``None`` removes it)."""
        if not self._persist(name, patch):
            return False
        self._emit_servers_updated()
        return True

    def update_tool_config(self, server_name: str, tool_name: str, disabled: bool) -> bool:
        try:
            parsed = self.config_store.load()
        except MCPError as err:
            self.state.add_error(err)
            return False
        entry = parsed.data[SERVERS_KEY].get(server_name) or {}
        current = list(entry.get("disabled_tools") or [])
        if disabled and tool_name not in current:
            current.append(tool_name)
        elif not disabled and tool_name in current:
            current.remove(tool_name)
        return self.update_server_config(server_name, {"disabled_tools": current})

    def load_config(self) -> bool:
        """Read the config file into the state's config section."""
        try:
            parsed = self.config_store.load()
        except MCPError as err:
            self.state.add_error(err)
            return False
        self.state.set_config(parsed.model)
        return True

    # ------------------------------------------------------------------
    # Derived views & events
    # ------------------------------------------------------------------
    def get_servers(self, include_disabled: bool = False) -> List[ServerRecord]:
        """Servers as consumers should see them.

        Disabled servers are dropped unless requested, disabled tools are
        removed and servers that are not connected show no capabilities.
        """
        servers_config = self.state.servers_config
        result = []
        for record in self.state.server.servers:
            server_config = servers_config.get(record.name)
            disabled = record.status == ServerStatus.DISABLED.value or bool(server_config and server_config.disabled)
            if disabled and not include_disabled:
                continue
            result.append(record.model_copy(update={"capabilities": record.displayed_capabilities()}))
        return result

    def handle_capability_change(self, server_name: str, kind: CapabilityKind, items: List[Any]) -> bool:
        kind = CapabilityKind(kind)
        try:
            record = self.state.patch_capabilities(server_name, kind, items)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s list for %s: %s", kind.value, server_name, exc)
            return False
        if record is None:
            logger.debug("Capability change for unknown server %s", server_name)
            return False

        if kind == CapabilityKind.TOOL:
            self.state.emit("tool_list_changed", {"hub": self, "server": server_name, "tools": record.capabilities.tools})
        else:
            field = "resources" if kind == CapabilityKind.RESOURCE else "resourceTemplates"
            self.state.emit(
                "resource_list_changed",
                {"hub": self, "server": server_name, field: getattr(record.capabilities, field)},
            )
        self._emit_servers_updated()
        return True

    def _emit_servers_updated(self) -> None:
        servers = self.get_servers()
        self.state.emit(
            "servers_updated",
            {
                "hub": self,
                "servers": servers,
                "prompt": prompts.get_active_servers_prompt(servers, self.state.servers_config),
            },
        )

    # ------------------------------------------------------------------
    # Marketplace
    # ------------------------------------------------------------------
    async def get_marketplace_catalog(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> Optional[List[Dict[str, Any]]]:
        filters = dict(self.state.marketplace.filters)
        if search is not None:
            filters["search"] = search
        if category is not None:
            filters["category"] = category
        if sort is not None:
            filters["sort"] = sort

        self.state.update_marketplace(status=MarketplaceStatus.LOADING, filters=filters)
        result, err = await self.http.request(
            "GET",
            "marketplace",
            query=filters,
            error_category=ErrorCategory.MARKETPLACE,
        )
        if err is not None:
            self.state.update_marketplace(status=MarketplaceStatus.ERROR)
            return None

        items = result.get("items", []) if isinstance(result, dict) else result
        if not isinstance(items, list):
            items = []
        self.state.update_marketplace(status=MarketplaceStatus.LOADED, items=items, last_updated=time.time())
        return items

    async def get_marketplace_server_details(self, mcp_id: str) -> Optional[Dict[str, Any]]:
        result, err = await self.http.request(
            "POST",
            "marketplace/details",
            body={"mcpId": mcp_id},
            timeout_ms=self.tool_timeout_ms,
            error_category=ErrorCategory.MARKETPLACE,
            record_errors=False,
        )
        if err is not None:
            self.state.add_error(
                marketplace_error(
                    "DETAILS_ERROR",
                    f"Failed to fetch details for {mcp_id}",
                    {"mcpId": mcp_id, "error": err.to_dict()},
                )
            )
            return None
        data = result.get("server", result) if isinstance(result, dict) else result
        details = {"data": data, "timestamp": time.time()}
        self.state.set_server_details(mcp_id, details)
        return details

    def get_marketplace_install_prompt(self, mcp_id: str) -> Optional[str]:
        details = self.state.marketplace.server_details.get(mcp_id)
        if not details or not isinstance(details.get("data"), dict):
            logger.error("Server details not available for %s", mcp_id)
            return None
        entry = next((item for item in self.state.marketplace.items if item.get("mcpId") == mcp_id), {})
        merged = {**entry, **details["data"], "mcpId": mcp_id}
        validation = self.config_store.validate()
        return prompts.get_marketplace_server_prompt(merged, str(self.config_path), validation.content)

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------
    def get_active_servers_prompt(self) -> str:
        if not self.ensure_ready():
            return ""
        return prompts.get_active_servers_prompt(self.get_servers(), self.state.servers_config)

    def get_use_mcp_tool_prompt(self, example: Optional[str] = None) -> str:
        if not self.ensure_ready():
            return ""
        return prompts.get_use_mcp_tool_prompt(example)

    def get_access_mcp_resource_prompt(self, example: Optional[str] = None) -> str:
        if not self.ensure_ready():
            return ""
        return prompts.get_access_mcp_resource_prompt(example)

    def get_prompts(
        self,
        use_mcp_tool_example: Optional[str] = None,
        access_mcp_resource_example: Optional[str] = None,
    ) -> Optional[Dict[str, str]]:
        if not self.ensure_ready():
            return None
        return {
            "active_servers": prompts.get_active_servers_prompt(self.get_servers(), self.state.servers_config),
            "use_mcp_tool": prompts.get_use_mcp_tool_prompt(use_mcp_tool_example),
            "access_mcp_resource": prompts.get_access_mcp_resource_prompt(access_mcp_resource_example),
        }
