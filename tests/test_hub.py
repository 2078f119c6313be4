"""
Tests for HubClient: attach/spawn lifecycle, readiness, server management,
change events, marketplace and prompt getters.

Spawning is exercised with ``HubProcess`` patched out; ``test_process.py``
covers real subprocesses.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from mcphub.schemas.hub import CapabilityKind, ConnectionState, ServerStatus
from mcphub.services.hub import HubClient, generate_client_id
from mcphub.services.state import LogEntry, MarketplaceStatus
from mcphub.utils.errors import ErrorCategory, setup_error
from tests._helpers import (
    FILES_SERVER,
    READY_LINE,
    WEATHER_SERVER,
    health_payload,
    wait_for_event,
)


async def drain(hub: HubClient) -> None:
    """Wait for the client's background requests to finish."""
    while hub._background:
        await asyncio.gather(*list(hub._background), return_exceptions=True)


@pytest.fixture
def hub_process():
    """Patch ``HubProcess`` so spawning records the call instead of running anything."""
    with patch("mcphub.services.hub.HubProcess") as process_cls:
        instance = process_cls.return_value
        instance.start = AsyncMock(return_value=4242)
        instance.pid = 4242
        instance.terminate = AsyncMock()
        yield process_cls


def hub_not_running(fake_hub):
    fake_hub.route("GET", "health", httpx.ConnectError("Connection refused"))


def emit_line(process_cls, line, stream="stdout"):
    process_cls.call_args.kwargs["on_line"](stream, line)


class TestClientId:

    def test_format(self):
        pid, stamp, rand = generate_client_id().split("_")
        assert pid.isdigit() and stamp.isdigit() and rand.isdigit()

    @pytest.mark.asyncio
    async def test_kept_across_reconnect(self, connected_hub, fake_hub):
        await connected_hub.stop()
        await drain(connected_hub)
        await connected_hub.start()

        ids = {call["json"]["clientId"] for call in fake_hub.calls_to("POST", "client/register")}
        assert ids == {connected_hub.client_id}
        assert len(fake_hub.calls_to("POST", "client/register")) == 2


class TestAttach:

    @pytest.mark.asyncio
    async def test_attach_does_not_spawn(self, hub, fake_hub, hub_process):
        """Happy path: a hub already answering health is reused."""
        event, on_ready, received = wait_for_event()
        await hub.start(on_ready=on_ready)

        hub_process.assert_not_called()
        assert event.is_set()
        assert received == [hub]
        assert hub.is_owner is False
        assert hub.connection_state == ConnectionState.CONNECTED
        assert [s.name for s in hub.state.server.servers] == ["weather", "files"]

    @pytest.mark.asyncio
    async def test_registers_client_id(self, connected_hub, fake_hub):
        calls = fake_hub.calls_to("POST", "client/register")
        assert len(calls) == 1
        assert calls[0]["json"] == {"clientId": connected_hub.client_id}

    @pytest.mark.asyncio
    async def test_foreign_service_on_port_is_not_attached(self, hub, fake_hub, hub_process):
        fake_hub.route("GET", "health", health_payload(server_id="something-else"))
        await hub.start()
        hub_process.assert_called_once()
        assert hub.is_owner is True

    @pytest.mark.asyncio
    async def test_second_start_is_ignored(self, connected_hub, fake_hub):
        await connected_hub.start()
        assert len(fake_hub.calls_to("POST", "client/register")) == 1

    @pytest.mark.asyncio
    async def test_catalog_fetched_after_ready(self, connected_hub, fake_hub):
        await drain(connected_hub)
        assert connected_hub.state.marketplace.status == MarketplaceStatus.LOADED
        assert connected_hub.state.marketplace.items[0]["mcpId"] == "github.com/acme/weather"

    @pytest.mark.asyncio
    async def test_registration_failure(self, hub, fake_hub):
        """Error condition: registration failure is reported and on_ready never fires."""
        fake_hub.route("POST", "client/register", httpx.Response(500, json={"error": "register broke"}))
        ready = MagicMock()
        _, on_error, errors = wait_for_event()

        await hub.start(on_ready=ready, on_error=on_error)

        ready.assert_not_called()
        assert len(errors) == 1
        assert errors[0].category is ErrorCategory.SERVER
        assert errors[0].code == "CONNECTION"
        assert errors[0].message == "Client registration failed"

    @pytest.mark.asyncio
    async def test_failed_health_after_ready_is_recorded(self, hub, fake_hub):
        answers = iter([health_payload(WEATHER_SERVER), httpx.Response(500, text="down")])
        fake_hub.route("GET", "health", lambda call: next(answers))
        ready = MagicMock()

        await hub.start(on_ready=ready)

        ready.assert_called_once_with(hub)
        assert any(e.code == "HEALTH_CHECK" for e in hub.state.get_errors(ErrorCategory.SERVER))


class TestSpawn:

    @pytest.mark.asyncio
    async def test_spawns_with_port_and_config(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        await hub.start()

        argv = hub_process.call_args.args[0]
        assert argv[-4:] == ["--port", str(hub.port), "--config", str(hub.config_path)]
        assert hub.is_owner is True
        assert hub.connection_state == ConnectionState.CONNECTING
        assert hub.state.server.pid == 4242
        assert hub.state.get_errors() == []

    @pytest.mark.asyncio
    async def test_ready_record_connects(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        event, on_ready, received = wait_for_event()
        await hub.start(on_ready=on_ready)

        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER))
        emit_line(hub_process, READY_LINE)
        emit_line(hub_process, READY_LINE)
        await asyncio.wait_for(event.wait(), 1)
        await drain(hub)

        assert received == [hub]
        assert hub.is_ready()
        assert len(fake_hub.calls_to("POST", "client/register")) == 1

    @pytest.mark.asyncio
    async def test_plain_output_is_logged(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        await hub.start()
        emit_line(hub_process, "npm WARN something", stream="stderr")
        entry = hub.state.logs[-1]
        assert entry.message == "npm WARN something"
        assert entry.type == "warn"

    @pytest.mark.asyncio
    async def test_error_record(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        _, on_error, errors = wait_for_event()
        await hub.start(on_error=on_error)

        emit_line(hub_process, json.dumps({"type": "error", "code": "CONFIG_INVALID", "message": "bad config"}))

        assert errors[0].category is ErrorCategory.SERVER
        assert errors[0].code == "CONNECTION"
        assert errors[0].details["hub_code"] == "CONFIG_INVALID"
        assert hub.state.get_errors(ErrorCategory.SERVER) == [errors[0]]

    @pytest.mark.asyncio
    async def test_exit_before_ready(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        _, on_error, errors = wait_for_event()
        await hub.start(on_error=on_error)

        hub_process.call_args.kwargs["on_exit"](1)

        assert hub.connection_state == ConnectionState.DISCONNECTED
        assert errors[0].category is ErrorCategory.SETUP
        assert errors[0].code == "SERVER_START"
        assert "exited with code 1" in errors[0].message

    @pytest.mark.asyncio
    async def test_exit_after_ready(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        event, on_ready, _ = wait_for_event()
        _, on_error, errors = wait_for_event()
        await hub.start(on_ready=on_ready, on_error=on_error)
        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER))
        emit_line(hub_process, READY_LINE)
        await asyncio.wait_for(event.wait(), 1)

        hub_process.call_args.kwargs["on_exit"](137)

        assert hub.connection_state == ConnectionState.DISCONNECTED
        assert errors[0].code == "CONNECTION"
        assert errors[0].message == "Server exited unexpectedly"

    @pytest.mark.asyncio
    async def test_spawn_failure(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        hub_process.return_value.start = AsyncMock(
            side_effect=setup_error("MISSING_DEPENDENCY", "Command not found: mcp-hub")
        )
        _, on_error, errors = wait_for_event()
        await hub.start(on_error=on_error)

        assert errors[0].code == "MISSING_DEPENDENCY"
        assert hub.connection_state == ConnectionState.DISCONNECTED
        assert hub.process is None

    @pytest.mark.asyncio
    async def test_tool_list_changed_record(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        event, on_ready, _ = wait_for_event()
        await hub.start(on_ready=on_ready)
        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER))
        emit_line(hub_process, READY_LINE)
        await asyncio.wait_for(event.wait(), 1)

        changed, listener, payloads = wait_for_event()
        hub.state.on("tool_list_changed", listener)
        record = {
            "type": "info",
            "code": "TOOL_LIST_CHANGED",
            "message": "Tools changed",
            "data": {"server": "weather", "tools": [{"name": "get_radar"}]},
        }
        emit_line(hub_process, json.dumps(record))
        await asyncio.wait_for(changed.wait(), 1)

        assert [t.name for t in payloads[0]["tools"]] == ["get_radar"]
        assert [t.name for t in hub.state.get_server("weather").capabilities.tools] == ["get_radar"]

    @pytest.mark.asyncio
    async def test_stop_leaves_process_running(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        event, on_ready, _ = wait_for_event()
        await hub.start(on_ready=on_ready)
        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER))
        emit_line(hub_process, READY_LINE)
        await asyncio.wait_for(event.wait(), 1)

        await hub.stop()
        await drain(hub)

        hub_process.return_value.terminate.assert_not_called()
        assert hub.connection_state == ConnectionState.DISCONNECTED


class TestStopAndRestart:

    @pytest.mark.asyncio
    async def test_stop_unregisters_same_client_id(self, connected_hub, fake_hub):
        await connected_hub.stop()
        await drain(connected_hub)

        register = fake_hub.calls_to("POST", "client/register")[0]["json"]["clientId"]
        unregister = fake_hub.calls_to("POST", "client/unregister")[0]["json"]["clientId"]
        assert register == unregister == connected_hub.client_id
        assert connected_hub.connection_state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unregister_failure_is_ignored(self, connected_hub, fake_hub):
        fake_hub.route("POST", "client/unregister", httpx.ConnectError("gone"))
        await connected_hub.stop()
        await drain(connected_hub)
        assert connected_hub.state.get_errors() == []

    @pytest.mark.asyncio
    async def test_stop_when_not_connected_sends_nothing(self, hub, fake_hub):
        await hub.stop()
        assert fake_hub.calls_to("POST", "client/unregister") == []

    @pytest.mark.asyncio
    async def test_stop_during_health_check_cancels_start(self, hub, fake_hub):
        """Error condition: stop() lands while start() waits for the health probe."""
        ready = []
        starting = asyncio.create_task(hub.start(on_ready=ready.append))
        await asyncio.sleep(0)

        await hub.stop()
        await starting
        await drain(hub)

        assert hub.connection_state == ConnectionState.DISCONNECTED
        assert ready == []
        assert fake_hub.calls_to("POST", "client/register") == []

    @pytest.mark.asyncio
    async def test_stop_while_registering_skips_on_ready(self, hub, fake_hub):
        release = asyncio.Event()
        registering = asyncio.Event()

        async def slow_register(call):
            registering.set()
            await release.wait()
            return {"registered": True}

        fake_hub.route("POST", "client/register", slow_register)
        ready = []
        starting = asyncio.create_task(hub.start(on_ready=ready.append))
        await asyncio.wait_for(registering.wait(), 1)

        await hub.stop()
        release.set()
        await starting
        await drain(hub)

        assert ready == []
        assert hub.connection_state == ConnectionState.DISCONNECTED
        assert len(fake_hub.calls_to("POST", "client/unregister")) == 1

    @pytest.mark.asyncio
    async def test_unregister_passes_ready_gate(self, connected_hub, fake_hub):
        """The unregister is issued before the state leaves connected."""
        states = []
        connected_hub.state.subscribe(lambda store, changed: states.append(store.server.status), ["server"])

        await connected_hub.stop()
        await drain(connected_hub)

        assert len(fake_hub.calls_to("POST", "client/unregister")) == 1
        assert states == [ConnectionState.DISCONNECTING, ConnectionState.DISCONNECTED]

    @pytest.mark.asyncio
    async def test_restart_as_owner(self, hub, fake_hub, hub_process):
        """Happy path: stop, reset and start again with the same client id."""
        hub_not_running(fake_hub)
        event, on_ready, _ = wait_for_event()
        await hub.start(on_ready=on_ready)
        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER))
        emit_line(hub_process, READY_LINE)
        await asyncio.wait_for(event.wait(), 1)
        await drain(hub)
        assert hub.is_owner is True

        notified = []
        hub.state.subscribe(lambda store, changed: notified.append(changed))
        hub.state.add_log(LogEntry(type="info", message="before restart"))
        restarted = []

        assert await hub.restart(on_ready=restarted.append) is True
        await drain(hub)

        assert restarted == [hub]
        assert hub.is_ready()
        assert hub.state.logs == []
        assert any("logs" in changed for changed in notified)
        ids = [call["json"]["clientId"] for call in fake_hub.calls_to("POST", "client/register")]
        assert ids == [hub.client_id, hub.client_id]
        assert len(fake_hub.calls_to("POST", "client/unregister")) == 1
        hub_process.return_value.terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_restart_waits_for_unregister(self, hub, fake_hub, hub_process):
        hub_not_running(fake_hub)
        event, on_ready, _ = wait_for_event()
        await hub.start(on_ready=on_ready)
        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER))
        emit_line(hub_process, READY_LINE)
        await asyncio.wait_for(event.wait(), 1)
        await drain(hub)

        order = []

        async def slow_unregister(call):
            await asyncio.sleep(0.05)
            order.append("unregister")
            return {"unregistered": True}

        def register(call):
            order.append("register")
            return {"registered": True}

        fake_hub.route("POST", "client/unregister", slow_unregister)
        fake_hub.route("POST", "client/register", register)

        await hub.restart()
        await drain(hub)

        assert order == ["unregister", "register"]
        assert hub.connection_state == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_restart_when_not_owner_refreshes(self, connected_hub, fake_hub):
        before = len(fake_hub.calls_to("GET", "health"))
        assert await connected_hub.restart() is True
        assert len(fake_hub.calls_to("GET", "health")) == before + 1
        assert fake_hub.calls_to("POST", "client/unregister") == []


class TestReadiness:

    @pytest.mark.asyncio
    async def test_requests_rejected_before_ready(self, hub, fake_hub):
        result, err = await hub.fetch_servers()
        assert result is None
        assert err.code == "INVALID_STATE"
        assert fake_hub.calls_to("GET", "servers") == []

    @pytest.mark.asyncio
    async def test_call_tool(self, connected_hub, fake_hub):
        fake_hub.route(
            "POST",
            "servers/weather/tools",
            {"result": {"content": [{"type": "text", "text": "Sunny"}]}},
        )
        result, err = await connected_hub.call_tool("weather", "get_forecast", {"city": "Paris"})

        assert err is None
        assert result["result"]["content"][0]["text"] == "Sunny"
        call = fake_hub.calls_to("POST", "servers/weather/tools")[0]
        assert call["json"] == {"tool": "get_forecast", "arguments": {"city": "Paris"}}
        assert call["timeout"].read == connected_hub.tool_timeout_ms / 1000

    @pytest.mark.asyncio
    async def test_access_resource_escapes_name(self, connected_hub, fake_hub):
        fake_hub.route("POST", "servers/my%20server/resources", {"result": {"contents": []}})
        _, err = await connected_hub.access_resource("my server", "file:///tmp/a")
        assert err is None
        assert fake_hub.calls_to("POST", "servers/my%20server/resources")[0]["json"] == {"uri": "file:///tmp/a"}

    @pytest.mark.asyncio
    async def test_prompts_empty_when_not_ready(self, hub):
        assert hub.get_active_servers_prompt() == ""
        assert hub.get_use_mcp_tool_prompt() == ""
        assert hub.get_access_mcp_resource_prompt() == ""
        assert hub.get_prompts() is None

    @pytest.mark.asyncio
    async def test_prompts_when_ready(self, connected_hub):
        prompts = connected_hub.get_prompts()
        assert "## weather" in prompts["active_servers"]
        assert "## files" in prompts["active_servers"]
        assert "## use_mcp_tool" in prompts["use_mcp_tool"]
        assert "## access_mcp_resource" in prompts["access_mcp_resource"]


class TestServerManagement:

    @pytest.mark.asyncio
    async def test_stop_server_is_optimistic_and_persists(self, connected_hub, fake_hub, config_file):
        seen = {}

        def stop_route(call):
            seen["status"] = connected_hub.state.get_server("weather").status
            return {"status": "ok"}

        fake_hub.route("POST", "servers/weather/stop", stop_route)
        result, err = await connected_hub.stop_mcp_server("weather", disable=True)

        assert err is None
        assert seen["status"] == ServerStatus.DISCONNECTING.value
        assert fake_hub.calls_to("POST", "servers/weather/stop")[0]["params"] == {"disable": "true"}
        assert json.loads(config_file.read_text())["mcpServers"]["weather"]["disabled"] is True
        assert [s.name for s in connected_hub.get_servers()] == ["files"]
        assert [s.name for s in connected_hub.get_servers(include_disabled=True)] == ["weather", "files"]

    @pytest.mark.asyncio
    async def test_stop_without_disable_sends_no_query(self, connected_hub, fake_hub):
        fake_hub.route("POST", "servers/weather/stop", {"status": "ok"})
        await connected_hub.stop_mcp_server("weather")
        assert "params" not in fake_hub.calls_to("POST", "servers/weather/stop")[0]

    @pytest.mark.asyncio
    async def test_start_server(self, connected_hub, fake_hub, config_file):
        connected_hub.update_server_config("weather", {"disabled": True})
        seen = {}

        def start_route(call):
            seen["status"] = connected_hub.state.get_server("weather").status
            return {"status": "ok"}

        fake_hub.route("POST", "servers/weather/start", start_route)
        await connected_hub.start_mcp_server("weather")

        assert seen["status"] == ServerStatus.CONNECTING.value
        assert json.loads(config_file.read_text())["mcpServers"]["weather"]["disabled"] is False

    @pytest.mark.asyncio
    async def test_disabled_status_hidden(self, connected_hub, fake_hub):
        fake_hub.route("GET", "health", health_payload(WEATHER_SERVER, {**FILES_SERVER, "status": "disabled"}))
        await connected_hub.refresh()
        assert [s.name for s in connected_hub.get_servers()] == ["weather"]

    @pytest.mark.asyncio
    async def test_disabled_tool_is_hidden(self, connected_hub, config_file):
        updates = []
        connected_hub.state.on("servers_updated", updates.append)

        assert connected_hub.update_tool_config("weather", "get_forecast", True) is True

        weather = next(s for s in connected_hub.get_servers() if s.name == "weather")
        assert [t.name for t in weather.capabilities.tools] == ["get_alerts"]
        assert "get_forecast" not in updates[-1]["prompt"]
        assert json.loads(config_file.read_text())["mcpServers"]["weather"]["disabled_tools"] == ["get_forecast"]

        connected_hub.update_tool_config("weather", "get_forecast", False)
        weather = next(s for s in connected_hub.get_servers() if s.name == "weather")
        assert [t.name for t in weather.capabilities.tools] == ["get_forecast", "get_alerts"]

    @pytest.mark.asyncio
    async def test_invalid_update_reports_error(self, connected_hub):
        assert connected_hub.update_server_config("weather", {"disabled_tools": "nope"}) is False
        assert connected_hub.state.get_errors(ErrorCategory.SETUP)[0].code == "INVALID_CONFIG"

    @pytest.mark.asyncio
    async def test_hard_refresh_publishes_servers(self, connected_hub, fake_hub):
        fake_hub.route("GET", "refresh", health_payload(WEATHER_SERVER))
        updates = []
        connected_hub.state.on("servers_updated", updates.append)

        assert await connected_hub.hard_refresh() is True

        assert [s.name for s in updates[0]["servers"]] == ["weather"]
        assert "## weather" in updates[0]["prompt"]
        assert updates[0]["hub"] is connected_hub

    @pytest.mark.asyncio
    async def test_refresh_failure(self, connected_hub, fake_hub):
        fake_hub.route("GET", "health", httpx.ConnectError("gone"))
        assert await connected_hub.refresh() is False


class TestCapabilityChanges:

    @pytest.mark.asyncio
    async def test_tool_change_event(self, connected_hub):
        tool_events, servers_events = [], []
        connected_hub.state.on("tool_list_changed", tool_events.append)
        connected_hub.state.on("servers_updated", servers_events.append)

        assert connected_hub.handle_capability_change("weather", CapabilityKind.TOOL, [{"name": "get_radar"}])

        assert tool_events[0]["server"] == "weather"
        assert [t.name for t in tool_events[0]["tools"]] == ["get_radar"]
        assert "get_radar" in servers_events[0]["prompt"]

    @pytest.mark.asyncio
    async def test_resource_template_change_event(self, connected_hub):
        events = []
        connected_hub.state.on("resource_list_changed", events.append)
        connected_hub.handle_capability_change(
            "weather", CapabilityKind.RESOURCE_TEMPLATE, [{"uriTemplate": "weather://{city}/hourly"}]
        )
        assert events[0]["resourceTemplates"][0].uriTemplate == "weather://{city}/hourly"

    @pytest.mark.asyncio
    async def test_unknown_server_ignored(self, connected_hub):
        events = []
        connected_hub.state.on("tool_list_changed", events.append)
        assert connected_hub.handle_capability_change("ghost", CapabilityKind.TOOL, []) is False
        assert events == []


class TestMarketplace:

    @pytest.mark.asyncio
    async def test_catalog_filters(self, connected_hub, fake_hub):
        await drain(connected_hub)
        items = await connected_hub.get_marketplace_catalog(search="weather")

        assert items[0]["name"] == "Weather"
        params = fake_hub.calls_to("GET", "marketplace")[-1]["params"]
        assert params == {"search": "weather", "sort": "newest"}
        assert connected_hub.state.marketplace.filters["search"] == "weather"

    @pytest.mark.asyncio
    async def test_catalog_failure(self, connected_hub, fake_hub):
        await drain(connected_hub)
        fake_hub.route("GET", "marketplace", httpx.ConnectError("offline"))

        assert await connected_hub.get_marketplace_catalog() is None

        assert connected_hub.state.marketplace.status == MarketplaceStatus.ERROR
        err = connected_hub.state.get_errors(ErrorCategory.MARKETPLACE)[0]
        assert err.code == "FETCH_ERROR"

    @pytest.mark.asyncio
    async def test_details_cached_and_install_prompt(self, connected_hub, fake_hub, config_file):
        await drain(connected_hub)
        mcp_id = "github.com/acme/weather"
        fake_hub.route(
            "POST",
            "marketplace/details",
            {"server": {"githubUrl": "https://github.com/acme/weather", "readmeContent": "# Weather"}},
        )

        details = await connected_hub.get_marketplace_server_details(mcp_id)

        assert details["data"]["readmeContent"] == "# Weather"
        assert connected_hub.state.marketplace.server_details[mcp_id] is details
        prompt = connected_hub.get_marketplace_install_prompt(mcp_id)
        assert "Task: Set up the MCP server from https://github.com/acme/weather" in prompt
        assert "- Name: Weather" in prompt
        assert str(config_file) in prompt
        assert "# Weather" in prompt

    @pytest.mark.asyncio
    async def test_details_failure_recorded_once(self, connected_hub, fake_hub):
        await drain(connected_hub)
        fake_hub.route("POST", "marketplace/details", httpx.Response(404, json={"error": "unknown server"}))

        assert await connected_hub.get_marketplace_server_details("nope") is None

        errors = connected_hub.state.get_errors(ErrorCategory.MARKETPLACE)
        assert [e.code for e in errors] == ["DETAILS_ERROR"]

    @pytest.mark.asyncio
    async def test_install_prompt_without_details(self, connected_hub):
        assert connected_hub.get_marketplace_install_prompt("never-fetched") is None
