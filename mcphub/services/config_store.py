from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..schemas.config import ConfigFile, ServerConfig
from ..utils.errors import MCPError, setup_error

logger = logging.getLogger("mcphub.config_store")

SERVERS_KEY = "mcpServers"


@dataclass
class ParsedConfig:
    """A config file that passed validation"""
    path: Path
    data: Dict[str, Any]
    content: str
    model: ConfigFile


@dataclass
class ValidationResult:
    ok: bool
    error: Optional[MCPError] = None
    json: Optional[Dict[str, Any]] = None
    content: Optional[str] = None


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``patch`` merged in.

    Nested dicts merge recursively, every other value (lists included)
    replaces what was there. Neither argument is modified.
    """
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _describe_validation_error(server_name: str, exc: ValidationError) -> str:
    fields = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
    if "disabled_tools" in fields:
        return f"disabled_tools must be an array of non-empty strings in server {server_name}"
    if "custom_instructions" in fields:
        return f"Invalid custom_instructions format in server {server_name}"
    return f"Invalid configuration for server {server_name}: {', '.join(sorted(fields)) or exc}"


def validate_document(data: Any, path: Path) -> ConfigFile:
    """Validate a decoded config document, raising ``SETUP.INVALID_CONFIG``."""
    if not isinstance(data, dict) or not isinstance(data.get(SERVERS_KEY), dict):
        raise setup_error("INVALID_CONFIG", f"Config file must contain '{SERVERS_KEY}' object: {path}")

    for server_name, server_config in data[SERVERS_KEY].items():
        if not isinstance(server_config, dict):
            raise setup_error("INVALID_CONFIG", f"Server {server_name} must be an object in {path}")
        disabled_tools = server_config.get("disabled_tools")
        if disabled_tools is not None and not isinstance(disabled_tools, list):
            raise setup_error("INVALID_CONFIG", f"disabled_tools must be an array in server {server_name}")

    try:
        return ConfigFile.model_validate(data)
    except ValidationError as exc:
        # report against the first offending server
        for err in exc.errors():
            loc = err.get("loc") or ()
            if len(loc) >= 3 and loc[0] == SERVERS_KEY:
                server_name = str(loc[1])
                server_exc = _server_errors(data[SERVERS_KEY][server_name])
                if server_exc is not None:
                    raise setup_error(
                        "INVALID_CONFIG",
                        _describe_validation_error(server_name, server_exc),
                        {"errors": server_exc.errors(include_url=False, include_input=False, include_context=False)},
                    ) from None
        raise setup_error(
            "INVALID_CONFIG",
            f"Invalid config file: {path}",
            {"errors": exc.errors(include_url=False, include_input=False, include_context=False)},
        ) from None


def _server_errors(server_config: Dict[str, Any]) -> Optional[ValidationError]:
    try:
        ServerConfig.model_validate(server_config)
    except ValidationError as exc:
        return exc
    return None


class ConfigStore:
    """Read-validate-merge-write access to the server definitions file.

    Nothing is cached between calls: each operation reads the file again so
    edits made by hand in the meantime are picked up, not overwritten.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> ParsedConfig:
        if not self.path.exists():
            raise setup_error("INVALID_CONFIG", f"Config file not found: {self.path}")

        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise setup_error("INVALID_CONFIG", f"Config file not readable: {self.path}", {"error": str(exc)}) from exc

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise setup_error(
                "INVALID_CONFIG",
                f"Invalid JSON in config file: {self.path}",
                {"parse_error": str(exc)},
            ) from exc

        model = validate_document(data, self.path)
        return ParsedConfig(path=self.path, data=data, content=content, model=model)

    def validate(self) -> ValidationResult:
        """Non-raising variant of :meth:`load`."""
        try:
            parsed = self.load()
        except MCPError as err:
            content = None
            if self.path.exists():
                try:
                    content = self.path.read_text(encoding="utf-8")
                except OSError:
                    content = None
            return ValidationResult(ok=False, error=err, content=content)
        return ValidationResult(ok=True, json=parsed.data, content=parsed.content)

    def update(self, server_name: str, patch: Optional[Dict[str, Any]]) -> ParsedConfig:
        """Merge ``patch`` into one server entry, or delete it when ``patch`` is None."""
        parsed = self.load()
        data = copy.deepcopy(parsed.data)
        servers = data[SERVERS_KEY]

        if patch is None:
            if server_name not in servers:
                logger.debug("Server %s not in config, nothing to remove", server_name)
                return parsed
            del servers[server_name]
        else:
            servers[server_name] = deep_merge(servers.get(server_name) or {}, patch)

        model = validate_document(data, self.path)
        content = self.dump(data)
        self._write(content)
        logger.info("Updated config for server %s in %s", server_name, self.path)
        return ParsedConfig(path=self.path, data=data, content=content, model=model)

    @staticmethod
    def dump(data: Dict[str, Any]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    def _write(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            if self.path.exists():
                os.chmod(tmp_name, self.path.stat().st_mode & 0o777)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise setup_error("INVALID_CONFIG", f"Failed to write config file: {self.path}", {"error": str(exc)}) from exc
