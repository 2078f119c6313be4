"""Service layer exports."""

from . import capabilities, config_store, hub, process, prompt, setup, state, type_handlers

__all__ = ["capabilities", "config_store", "hub", "process", "prompt", "setup", "state", "type_handlers"]
