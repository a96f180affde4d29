"""Structured operation logging for updatectl.

Every CLI command runs inside :meth:`StructuredLogger.operation`, which
appends one JSON document per invocation to ``operations.jsonl``. Modules
also log free-form messages through ``logging.getLogger(__name__)``; those
records land in the rotating ``updatectl.log`` next to the operations file.

The logger never raises because of its own I/O: when the log directory is
unusable it disables itself and commands carry on.
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import secrets
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

OPERATIONS_LOG_NAME = "operations.jsonl"
HUMAN_LOG_NAME = "updatectl.log"
HUMAN_LOG_MAX_BYTES = 5 * 1024 * 1024
HUMAN_LOG_BACKUPS = 3
PACKAGE_LOGGER = "updatectl"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final result for a single operation."""

    def __init__(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise the scope for *command*."""
        self.command = command
        self.op_id = secrets.token_hex(6)
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.started_at = _now_iso()
        self._started = time.monotonic()
        self.steps: list[dict[str, object]] = []
        self.lock_wait_ms: int | None = None
        self.result: dict[str, object] | None = None

    def add_step(self, name: str, *, status: str = "info", detail: object | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status, "ts": _now_iso()}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its locks."""
        self.lock_wait_ms = int(wait_ms)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            backups=backups,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
        rc: int | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            backups=backups,
            context=context,
            rc=rc,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        changed: int = 0,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=changed,
            errors=list(errors) if errors else [message],
            backups=backups,
            context=context,
            rc=rc,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
        rc: int | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "backups": list(backups or []),
        }
        if context:
            result["context"] = _sanitize(context)
        if rc is not None:
            result["rc"] = rc
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record describing the operation."""
        duration_ms = int((time.monotonic() - self._started) * 1000)
        record: dict[str, object] = {
            "ts": self.started_at,
            "op_id": self.op_id,
            "pid": os.getpid(),
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": _sanitize(self.steps),
            "duration_ms": duration_ms,
            "result": self.result
            or {"status": "success", "message": "", "changed": 0, "warnings": [], "errors": []},
        }
        if self.lock_wait_ms is not None:
            record["lock_wait_ms"] = self.lock_wait_ms
        return record


class StructuredLogger:
    """Write operation records and human-readable logs under *logs_dir*."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare the log directory and attach the rotating file handler."""
        self.logs_dir = Path(logs_dir).expanduser()
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG_NAME
        self._human_log_path = self.logs_dir / HUMAN_LOG_NAME
        self._enabled = True
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False
            return
        self._attach_file_handler()

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Context manager that records a single operation."""
        scope = OperationScope(command, args=args, target=target)
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__, errors=[repr(exc)])
            raise
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False))
                handle.write("\n")
        except OSError:
            self._enabled = False

    def _attach_file_handler(self) -> None:
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        target = str(self._human_log_path)
        for handler in package_logger.handlers:
            if getattr(handler, "baseFilename", None) == target:
                return
        try:
            handler = logging.handlers.RotatingFileHandler(
                target,
                maxBytes=HUMAN_LOG_MAX_BYTES,
                backupCount=HUMAN_LOG_BACKUPS,
                encoding="utf-8",
            )
        except OSError:
            return
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        package_logger.addHandler(handler)
        if package_logger.level == logging.NOTSET:
            package_logger.setLevel(logging.INFO)


__all__ = ["OperationScope", "StructuredLogger"]
