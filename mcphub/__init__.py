"""Client runtime for a local mcp-hub process."""

from .services.capabilities import CapabilityInvoker, CapabilityResult
from .services.config_store import ConfigStore
from .services.hub import HubClient
from .services.setup import setup
from .services.state import StateStore
from .utils.errors import ErrorCategory, MCPError

__version__ = "0.1.0"

__all__ = [
    "CapabilityInvoker",
    "CapabilityResult",
    "ConfigStore",
    "ErrorCategory",
    "HubClient",
    "MCPError",
    "StateStore",
    "setup",
]
