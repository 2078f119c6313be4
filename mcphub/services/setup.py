"""
Setup sequence.

``setup()`` validates everything that can be checked before a connection is
attempted (port, config file, hub version), loads the config into the state
store and starts a :class:`HubClient`. Failures of these steps are SETUP
errors: the setup state becomes ``failed`` and ``on_error`` is called.
"""
from __future__ import annotations

import logging
import shlex
from typing import Callable, Optional, Sequence

from ..config import Settings, get_settings
from ..utils.central_logging import setup_logging
from ..utils.errors import ErrorCategory, MCPError, setup_error
from .config_store import ConfigStore
from .hub import HubClient
from .process import check_version
from .state import SetupState, StateStore

logger = logging.getLogger("mcphub.setup")


def validate_port(port) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise setup_error("INVALID_PORT", "Port is required for MCPHub setup", {"port": port})
    if not 0 < port < 65536:
        raise setup_error("INVALID_PORT", f"Port must be between 1 and 65535, got {port}", {"port": port})
    return port


async def setup(
    settings: Optional[Settings] = None,
    *,
    state: Optional[StateStore] = None,
    command: Optional[Sequence[str]] = None,
    on_ready: Optional[Callable[[HubClient], None]] = None,
    on_error: Optional[Callable[[MCPError], None]] = None,
    check_hub_version: bool = True,
    configure_logging: bool = False,
) -> Optional[HubClient]:
    """Run the setup sequence and start the hub client.

    Returns the started client, or ``None`` when a setup step failed.
    ``on_ready`` fires once the client is registered with the hub.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_file)
    if state is None:
        state = StateStore(max_errors=settings.max_errors, max_log_entries=settings.max_log_entries)
    argv = list(command) if command is not None else shlex.split(settings.command)

    def fail(err: MCPError) -> None:
        state.set_setup_state(SetupState.FAILED)
        if on_error is not None:
            on_error(err)

    state.set_setup_state(SetupState.IN_PROGRESS)
    logger.info("Setting up hub client on port %s with %s", settings.port, settings.config)

    try:
        validate_port(settings.port)
        parsed = ConfigStore(settings.config).load()
        if check_hub_version:
            version = await check_version(argv, settings.required_version, settings.version_check_timeout)
            logger.info("Found mcp-hub %s", version)
    except MCPError as err:
        state.add_error(err)
        fail(err)
        return None

    state.set_config(parsed.model)

    hub = HubClient(
        settings.port,
        settings.config,
        state,
        command=argv,
        host=settings.host,
        quick_timeout_ms=settings.quick_timeout_ms,
        tool_timeout_ms=settings.tool_timeout_ms,
        resource_timeout_ms=settings.tool_timeout_ms,
    )

    def ready(client: HubClient) -> None:
        state.set_setup_state(SetupState.COMPLETED)
        if on_ready is not None:
            on_ready(client)

    def error(err: MCPError) -> None:
        # hub errors during startup are fatal only while setup is running
        if err.category == ErrorCategory.SETUP and state.setup_state == SetupState.IN_PROGRESS:
            fail(err)
        elif on_error is not None:
            on_error(err)

    await hub.start(on_ready=ready, on_error=error)
    return hub
