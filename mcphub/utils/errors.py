from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger("mcphub.errors")


class ErrorCategory(str, Enum):
    """Top level error categories"""
    SETUP = "SETUP"
    SERVER = "SERVER"
    RUNTIME = "RUNTIME"
    MARKETPLACE = "MARKETPLACE"


# Closed set of codes per category
ERROR_CODES: Dict[ErrorCategory, frozenset] = {
    ErrorCategory.SETUP: frozenset({
        "INVALID_CONFIG",
        "INVALID_PORT",
        "MISSING_DEPENDENCY",
        "VERSION_MISMATCH",
        "SERVER_START",
    }),
    ErrorCategory.SERVER: frozenset({
        "CONNECTION",
        "HEALTH_CHECK",
        "API_ERROR",
        "CURL_ERROR",
        "TIMEOUT",
        "INVALID_STATE",
    }),
    ErrorCategory.RUNTIME: frozenset({
        "INVALID_STATE",
        "RESOURCE_ERROR",
        "OPERATION_FAILED",
    }),
    ErrorCategory.MARKETPLACE: frozenset({
        "FETCH_ERROR",
        "DETAILS_ERROR",
    }),
}


class MCPError(Exception):
    """Structured error used by every component.

    Instances are immutable once constructed. ``str(err)`` renders a single
    ``[CATEGORY.CODE] message`` line followed by an indented details dump when
    details are present.
    """

    def __init__(
        self,
        category: ErrorCategory | str,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        timestamp: Optional[float] = None,
    ) -> None:
        category = ErrorCategory(category)
        if code not in ERROR_CODES[category]:
            raise ValueError(f"Unknown {category.value} error code: {code}")

        object.__setattr__(self, "category", category)
        object.__setattr__(self, "code", code)
        object.__setattr__(self, "message", message)
        object.__setattr__(self, "details", dict(details or {}))
        object.__setattr__(self, "timestamp", timestamp if timestamp is not None else time.time())
        super().__init__(message)

    def __setattr__(self, name: str, value: Any) -> None:
        # interpreter bookkeeping (__traceback__, __context__, __notes__) stays writable
        if name.startswith("__"):
            object.__setattr__(self, name, value)
            return
        raise AttributeError("MCPError is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("MCPError is immutable")

    def __reduce__(self):
        return (
            _rebuild,
            (self.category.value, self.code, self.message, self.details, self.timestamp),
        )

    @property
    def summary(self) -> str:
        return f"[{self.category.value}.{self.code}] {self.message}"

    def __str__(self) -> str:
        if not self.details:
            return self.summary
        dump = json.dumps(self.details, indent=2, default=str, ensure_ascii=False)
        indented = "\n".join("  " + line for line in dump.splitlines())
        return f"{self.summary}\nDetails:\n{indented}"

    def __repr__(self) -> str:
        return f"MCPError({self.category.value!r}, {self.code!r}, {self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MCPError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.category, self.code, self.message, self.timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCPError":
        return cls(
            data["category"],
            data["code"],
            data.get("message", ""),
            data.get("details") or {},
            timestamp=data.get("timestamp"),
        )


def _rebuild(category, code, message, details, timestamp) -> MCPError:
    return MCPError(category, code, message, details, timestamp=timestamp)


def setup_error(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> MCPError:
    return MCPError(ErrorCategory.SETUP, code, message, details)


def server_error(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> MCPError:
    return MCPError(ErrorCategory.SERVER, code, message, details)


def runtime_error(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> MCPError:
    return MCPError(ErrorCategory.RUNTIME, code, message, details)


def marketplace_error(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> MCPError:
    return MCPError(ErrorCategory.MARKETPLACE, code, message, details)


__all__ = [
    "ERROR_CODES",
    "ErrorCategory",
    "MCPError",
    "marketplace_error",
    "runtime_error",
    "server_error",
    "setup_error",
]
