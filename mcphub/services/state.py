"""
Reactive state store for the hub client.

One explicitly constructed ``StateStore`` is shared by every component of a
session. It holds six top-level sections:

- setup:        not_started -> in_progress -> completed | failed
- server:       connection state, hub pid, start time and the server records
- marketplace:  catalog, filters and a per-item details cache
- errors:       per-category error lists, newest first, capped
- logs:         hub process output, capped
- config:       last validated server definitions document

Every mutation finishes before subscribers are told which sections changed.
``batch()`` folds several mutations into one notification.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Set

from ..schemas.config import ConfigFile, ServerConfig
from ..schemas.hub import CapabilityKind, ConnectionState, ServerRecord
from ..utils.errors import ErrorCategory, MCPError

logger = logging.getLogger("mcphub.state")

SECTIONS: FrozenSet[str] = frozenset({"setup", "server", "marketplace", "errors", "logs", "config"})

Subscriber = Callable[["StateStore", FrozenSet[str]], None]
EventListener = Callable[[Dict[str, Any]], None]


class SetupState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class MarketplaceStatus(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass
class ServerSection:
    status: ConnectionState = ConnectionState.DISCONNECTED
    pid: Optional[int] = None
    started_at: Optional[float] = None
    servers: List[ServerRecord] = field(default_factory=list)


@dataclass
class MarketplaceSection:
    status: MarketplaceStatus = MarketplaceStatus.EMPTY
    items: List[Dict[str, Any]] = field(default_factory=list)
    last_updated: Optional[float] = None
    filters: Dict[str, Optional[str]] = field(
        default_factory=lambda: {"search": None, "category": None, "sort": "newest"}
    )
    server_details: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class LogEntry:
    """One line of hub output"""
    type: str
    message: str
    timestamp: float = field(default_factory=time.time)
    code: Optional[str] = None
    data: Any = None
    stream: str = "stdout"


_CAPABILITY_FIELDS = {
    CapabilityKind.TOOL: "tools",
    CapabilityKind.RESOURCE: "resources",
    CapabilityKind.RESOURCE_TEMPLATE: "resourceTemplates",
}


class StateStore:
    """Single reactive store shared by the hub client and its consumers."""

    def __init__(self, max_errors: int = 100, max_log_entries: int = 1000) -> None:
        self.max_errors = max_errors
        self.max_log_entries = max_log_entries

        self._subscribers: List[tuple] = []
        self._event_listeners: Dict[str, List[EventListener]] = {}
        self._batch_depth = 0
        self._pending: Set[str] = set()

        self._init_sections()
        self.setup_state = SetupState.NOT_STARTED
        self.config: Optional[ConfigFile] = None

    def _init_sections(self) -> None:
        self.server = ServerSection()
        self.marketplace = MarketplaceSection()
        self.errors: Dict[ErrorCategory, List[MCPError]] = {category: [] for category in ErrorCategory}
        self.logs: List[LogEntry] = []
        self.last_update = 0.0

    # ------------------------------------------------------------------
    # Subscription & notification
    # ------------------------------------------------------------------
    def subscribe(self, callback: Subscriber, sections: Optional[Iterable[str]] = None) -> Callable[[], None]:
        """Register ``callback(store, changed_sections)``.

        With ``sections`` the callback only fires when one of them changed.
        Returns a function that removes the subscription.
        """
        scope: Optional[FrozenSet[str]] = None
        if sections is not None:
            scope = frozenset(sections)
            unknown = scope - SECTIONS
            if unknown:
                raise ValueError(f"Unknown state sections: {', '.join(sorted(unknown))}")
        entry = (callback, scope)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        self._subscribers = [entry for entry in self._subscribers if entry[0] is not callback]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @contextmanager
    def batch(self) -> Iterator["StateStore"]:
        """Coalesce notifications of all mutations made inside the block."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                changed = frozenset(self._pending)
                self._pending.clear()
                self._dispatch(changed)

    def _changed(self, *sections: str) -> None:
        self.last_update = time.time()
        if self._batch_depth:
            self._pending.update(sections)
            return
        self._dispatch(frozenset(sections))

    def _dispatch(self, changed: FrozenSet[str]) -> None:
        for callback, scope in list(self._subscribers):
            if scope is not None and not (scope & changed):
                continue
            try:
                callback(self, changed)
            except Exception:
                logger.exception("State subscriber %r failed", callback)

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------
    def on(self, event: str, callback: EventListener) -> None:
        self._event_listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Optional[EventListener] = None) -> None:
        if callback is None:
            self._event_listeners[event] = []
            return
        listeners = self._event_listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: str, data: Dict[str, Any]) -> None:
        for callback in list(self._event_listeners.get(event, [])):
            try:
                callback(data)
            except Exception:
                logger.exception("Listener for %s failed", event)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def set_setup_state(self, state: SetupState) -> None:
        state = SetupState(state)
        if state == self.setup_state:
            return
        self.setup_state = state
        self._changed("setup")

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------
    def update_server(self, **fields: Any) -> None:
        """Set fields of the server section (status, pid, started_at, servers)."""
        changed = False
        for name, value in fields.items():
            if not hasattr(self.server, name):
                raise AttributeError(f"Unknown server state field: {name}")
            if name == "status":
                value = ConnectionState(value)
            if getattr(self.server, name) != value:
                setattr(self.server, name, value)
                changed = True
        if changed:
            self._changed("server")

    def set_servers(self, servers: Iterable[ServerRecord]) -> None:
        """Replace all server records, applying the config overlay."""
        records = [self._with_overlay(record) for record in servers]
        self.server.servers = records
        self._changed("server")

    def get_server(self, name: str) -> Optional[ServerRecord]:
        for record in self.server.servers:
            if record.name == name:
                return record
        return None

    def set_server_status(self, name: str, status: str) -> bool:
        record = self.get_server(name)
        if record is None:
            return False
        record.status = str(getattr(status, "value", status))
        self._changed("server")
        return True

    def patch_capabilities(self, name: str, kind: CapabilityKind, items: List[Any]) -> Optional[ServerRecord]:
        """Replace one capability list of a single server in place."""
        record = self.get_server(name)
        if record is None:
            return None
        attribute = _CAPABILITY_FIELDS[CapabilityKind(kind)]
        validated = record.capabilities.model_validate({attribute: items})
        setattr(record.capabilities, attribute, getattr(validated, attribute))
        self._changed("server")
        return record

    def _with_overlay(self, record: ServerRecord) -> ServerRecord:
        server_config = self.servers_config.get(record.name)
        disabled = list(server_config.disabled_tools or []) if server_config else []
        if record.disabled_tools != disabled:
            record = record.model_copy(update={"disabled_tools": disabled})
        return record

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------
    @property
    def servers_config(self) -> Dict[str, ServerConfig]:
        return dict(self.config.mcp_servers) if self.config else {}

    def set_config(self, config: ConfigFile) -> None:
        with self.batch():
            self.config = config
            self._changed("config")
            if self.server.servers:
                self.server.servers = [self._with_overlay(record) for record in self.server.servers]
                self._changed("server")

    # ------------------------------------------------------------------
    # Marketplace
    # ------------------------------------------------------------------
    def update_marketplace(self, **fields: Any) -> None:
        for name, value in fields.items():
            if not hasattr(self.marketplace, name):
                raise AttributeError(f"Unknown marketplace state field: {name}")
            if name == "status":
                value = MarketplaceStatus(value)
            if name == "filters":
                value = {**self.marketplace.filters, **value}
            setattr(self.marketplace, name, value)
        self._changed("marketplace")

    def set_server_details(self, mcp_id: str, details: Dict[str, Any]) -> None:
        self.marketplace.server_details[mcp_id] = details
        self._changed("marketplace")

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------
    def add_error(self, err: MCPError, log_level: Optional[str] = None) -> None:
        """Record an error (newest first) and log it."""
        items = self.errors[err.category]
        items.insert(0, err)
        del items[self.max_errors:]
        self._changed("errors")

        if log_level:
            level = logging.getLevelName(log_level.upper())
        elif err.category == ErrorCategory.SETUP:
            level = logging.ERROR
        elif err.category == ErrorCategory.SERVER:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(level if isinstance(level, int) else logging.INFO, "%s", err)

    def get_errors(self, category: Optional[ErrorCategory] = None) -> List[MCPError]:
        if category is not None:
            return list(self.errors[ErrorCategory(category)])
        merged = [err for items in self.errors.values() for err in items]
        return sorted(merged, key=lambda err: err.timestamp, reverse=True)

    def clear_errors(self, category: Optional[ErrorCategory] = None) -> None:
        if category is not None:
            self.errors[ErrorCategory(category)] = []
        else:
            self.errors = {c: [] for c in ErrorCategory}
        self._changed("errors")

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------
    def add_log(self, entry: LogEntry) -> None:
        if not entry.type or not entry.message:
            return
        self.logs.append(entry)
        if len(self.logs) > self.max_log_entries:
            del self.logs[: len(self.logs) - self.max_log_entries]
        self._changed("logs")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def reset(self) -> None:
        """Clear server, marketplace, error and log sections. Subscribers and listeners stay."""
        self._init_sections()
        self._changed("server", "marketplace", "errors", "logs")

    def teardown(self) -> None:
        """Drop everything including subscribers."""
        self._subscribers.clear()
        self._event_listeners.clear()
        self._pending.clear()
        self._init_sections()
        self.setup_state = SetupState.NOT_STARTED
        self.config = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "setup": self.setup_state.value,
            "server": {
                "status": self.server.status.value,
                "pid": self.server.pid,
                "started_at": self.server.started_at,
                "servers": [record.model_dump() for record in self.server.servers],
            },
            "marketplace": {
                "status": self.marketplace.status.value,
                "items": list(self.marketplace.items),
                "filters": dict(self.marketplace.filters),
                "last_updated": self.marketplace.last_updated,
            },
            "errors": {c.value: [err.to_dict() for err in items] for c, items in self.errors.items()},
            "logs": len(self.logs),
            "config": self.config.model_dump(by_alias=True, exclude_none=True) if self.config else None,
        }
