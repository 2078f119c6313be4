"""
Hub process supervision.

``HubProcess`` spawns the hub binary and consumes its output: one reader task
per stream delivers each line to ``on_line(stream, text)`` and a waiter task
reports the exit code to ``on_exit(code)`` once both streams are drained.
The process is never killed on disconnect; the hub shuts itself down after
its last client unregisters.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..schemas.hub import HubLogRecord
from ..utils.errors import ERROR_CODES, ErrorCategory, MCPError, server_error, setup_error

logger = logging.getLogger("mcphub.process")

# hub lines may carry full capability lists
STREAM_LIMIT = 2 ** 20

RECORD_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def parse_output_line(line: str) -> Optional[HubLogRecord]:
    """Parse one line of hub output, ``None`` for anything that is not a log record."""
    text = line.strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return HubLogRecord.model_validate(data)
    except ValidationError:
        return None


def record_to_error(record: HubLogRecord) -> MCPError:
    """Map an ``error`` record to a SERVER error; unknown hub codes become CONNECTION."""
    code = record.code if record.code in ERROR_CODES[ErrorCategory.SERVER] else "CONNECTION"
    if isinstance(record.data, dict):
        details: Dict[str, Any] = dict(record.data)
    elif record.data is not None:
        details = {"data": record.data}
    else:
        details = {}
    if record.code and record.code != code:
        details["hub_code"] = record.code
    return server_error(code, record.message or "Hub reported an error", details)


def log_record(record: HubLogRecord) -> None:
    level = RECORD_LEVELS.get(record.type, logging.INFO)
    code = record.code or f"SERVER_{record.type.upper()}"
    if record.data is not None:
        logger.log(level, "[%s] %s %s", code, record.message, record.data)
    else:
        logger.log(level, "[%s] %s", code, record.message)


class HubProcess:
    """One spawned hub process and its output readers."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        on_line: Callable[[str, str], None],
        on_exit: Callable[[int], None],
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        if not argv:
            raise ValueError("argv must not be empty")
        self.argv = list(argv)
        self.env = env
        self._on_line = on_line
        self._on_exit = on_exit
        self.process: Optional[asyncio.subprocess.Process] = None
        self.returncode: Optional[int] = None
        self._readers: List[asyncio.Task] = []
        self._waiter: Optional[asyncio.Task] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def running(self) -> bool:
        return self.process is not None and self.returncode is None

    async def start(self) -> int:
        logger.info("Starting hub: %s", " ".join(self.argv))
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError as exc:
            raise setup_error(
                "MISSING_DEPENDENCY",
                f"Command not found: {self.argv[0]}",
                {"command": self.argv, "error": str(exc)},
            ) from exc
        except OSError as exc:
            raise setup_error(
                "SERVER_START",
                f"Failed to start hub process: {exc}",
                {"command": self.argv},
            ) from exc

        self._readers = [
            asyncio.create_task(self._read(self.process.stdout, "stdout")),
            asyncio.create_task(self._read(self.process.stderr, "stderr")),
        ]
        self._waiter = asyncio.create_task(self._wait())
        logger.debug("Hub process started pid=%s", self.process.pid)
        return self.process.pid

    async def _read(self, stream: asyncio.StreamReader, name: str) -> None:
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                logger.warning("Dropped oversized %s line from hub", name)
                continue
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip("\r\n")
            if not text.strip():
                continue
            try:
                self._on_line(name, text)
            except Exception:
                logger.exception("Output handler failed for %s line", name)

    async def _wait(self) -> None:
        code = await self.process.wait()
        # exit is reported after every buffered line has been delivered
        await asyncio.gather(*self._readers, return_exceptions=True)
        self.returncode = code
        logger.info("Hub process %s exited with code %s", self.process.pid, code)
        try:
            self._on_exit(code)
        except Exception:
            logger.exception("Exit handler failed")

    async def wait(self) -> Optional[int]:
        if self._waiter is not None:
            await asyncio.shield(self._waiter)
        return self.returncode

    async def terminate(self, timeout: float = 5.0) -> Optional[int]:
        """Stop the process: SIGTERM, then SIGKILL after ``timeout`` seconds."""
        if not self.running:
            return self.returncode
        self.process.terminate()
        try:
            await asyncio.wait_for(self.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Hub process %s ignored SIGTERM, killing", self.process.pid)
            self.process.kill()
            await self.wait()
        return self.returncode


def parse_version(text: str) -> Optional[Tuple[int, int, int]]:
    match = VERSION_PATTERN.search(text or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def version_satisfies(current: Tuple[int, int, int], required: Tuple[int, int, int]) -> bool:
    """Same major version and at least the required minor version."""
    return current[0] == required[0] and current[1] >= required[1]


async def check_version(command: Sequence[str], required: str, timeout: float = 10.0) -> str:
    """Run ``<command> --version`` and enforce the compatibility floor.

    Returns the reported version string. Raises ``SETUP.MISSING_DEPENDENCY``
    when the binary cannot be run and ``SETUP.VERSION_MISMATCH`` when its
    version is unparseable or incompatible.
    """
    required_parts = parse_version(required)
    if required_parts is None:
        raise ValueError(f"Invalid required version: {required}")
    install_cmd = f"npm install -g mcp-hub@{required}"
    argv = [*command, "--version"]

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise setup_error(
            "MISSING_DEPENDENCY",
            "mcp-hub executable not found",
            {"command": argv, "error": str(exc), "install_cmd": install_cmd},
        ) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise setup_error(
            "MISSING_DEPENDENCY",
            f"Timed out after {timeout}s waiting for mcp-hub --version",
            {"command": argv, "install_cmd": install_cmd},
        ) from None

    if proc.returncode != 0:
        raise setup_error(
            "MISSING_DEPENDENCY",
            f"mcp-hub --version failed with code {proc.returncode}",
            {
                "command": argv,
                "stderr": stderr.decode("utf-8", errors="replace").strip(),
                "install_cmd": install_cmd,
            },
        )

    output = stdout.decode("utf-8", errors="replace").strip()
    current = parse_version(output)
    if current is None:
        raise setup_error("VERSION_MISMATCH", "Invalid version format", {"version": output})
    found = ".".join(str(part) for part in current)
    if not version_satisfies(current, required_parts):
        raise setup_error(
            "VERSION_MISMATCH",
            f"Incompatible mcp-hub version. Found {found}, required {required}",
            {"found": found, "required": required, "install_cmd": install_cmd},
        )
    logger.debug("mcp-hub version %s satisfies %s", found, required)
    return found
