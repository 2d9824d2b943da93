"""Run report ``api_code`` in an isolated interpreter process.

Each execution spawns a fresh Python process (``spawn`` start method, so
nothing from the API process is inherited besides the import path). The
child clears its environment, applies POSIX resource limits, and runs the
snippet against a restricted builtins table with a whitelisted import hook.
The parent enforces the wall-clock budget and re-emits the child's log lines
under the ``ledgerlens.sandbox`` logger.
"""

from __future__ import annotations

import ast
import asyncio
import logging
import math
import multiprocessing
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core import config
from .sandbox_worker import (
    KIND_SANDBOX,
    KIND_SYNTAX,
    KIND_TIMEOUT,
    is_blocked_attribute,
    run_worker,
)

logger = logging.getLogger(__name__)
sandbox_logger = logging.getLogger("ledgerlens.sandbox")

STARTUP_TIMEOUT_SECONDS = 15.0


@dataclass
class ExecutionResult:
    data: Optional[List[Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    stack: Optional[str] = None
    kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str, kind: str, stack: Optional[str] = None) -> "ExecutionResult":
        return cls(error=error, kind=kind, stack=stack)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ExecutionResult":
        if payload.get("error") is not None:
            return cls.failure(payload["error"], payload.get("kind") or KIND_SANDBOX, payload.get("stack"))
        return cls(data=payload["data"], metadata=payload.get("metadata") or {})

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"data": self.data, "metadata": self.metadata}
        return {"error": self.error, "stack": self.stack, "kind": self.kind}


def check_source(source_code: str) -> Optional[ExecutionResult]:
    """Reject code that does not parse or reaches for private or frame attributes."""

    try:
        tree = ast.parse(source_code, filename="<report>")
    except SyntaxError as exc:
        return ExecutionResult.failure(
            f"Invalid report code: {exc.msg} (line {exc.lineno})", KIND_SYNTAX
        )

    for node in ast.walk(tree):
        name = None
        if isinstance(node, ast.Attribute) and is_blocked_attribute(node.attr):
            name = node.attr
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            name = node.id
        if name is not None:
            return ExecutionResult.failure(
                f"Invalid report code: access to '{name}' is not allowed (line {node.lineno})",
                KIND_SYNTAX,
            )
    return None


def _stop(process: multiprocessing.process.BaseProcess) -> None:
    if process.is_alive():
        process.terminate()
        process.join(1)
        if process.is_alive():
            process.kill()
    process.join()


def _collect(conn, process, timeout: float, startup_timeout: float) -> ExecutionResult:
    deadline = time.monotonic() + startup_timeout
    started = False
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not conn.poll(remaining):
            if started:
                logger.warning("Sandbox exceeded its %.1fs budget; terminating", timeout)
                return ExecutionResult.failure(
                    f"Execution timed out after {float(timeout)} seconds", KIND_TIMEOUT
                )
            return ExecutionResult.failure("Sandbox failed to start", KIND_SANDBOX)

        try:
            message = conn.recv()
        except EOFError:
            process.join(1)
            return ExecutionResult.failure(
                f"Sandbox process exited unexpectedly (exit code {process.exitcode})",
                KIND_SANDBOX,
            )

        tag = message[0]
        if tag == "ready":
            started = True
            deadline = time.monotonic() + timeout
        elif tag == "log":
            _, level, text = message
            sandbox_logger.log(level, "[Sandbox] %s", text)
        elif tag == "result":
            return ExecutionResult.from_payload(message[1])


def execute(
    source_code: str,
    context: Dict[str, Any],
    *,
    timeout: Optional[float] = None,
    memory_limit_mb: Optional[int] = None,
    startup_timeout: float = STARTUP_TIMEOUT_SECONDS,
) -> ExecutionResult:
    """Run ``source_code``'s ``fetch_report_data(context)`` in a sandbox process.

    Never raises for problems with the report itself; every failure comes back
    as an :class:`ExecutionResult` with ``error`` and ``kind`` set.
    """

    timeout = config.SANDBOX_TIMEOUT_SECONDS if timeout is None else timeout
    memory_limit_mb = (
        config.SANDBOX_MEMORY_LIMIT_MB if memory_limit_mb is None else memory_limit_mb
    )

    rejected = check_source(source_code)
    if rejected is not None:
        return rejected

    ctx = multiprocessing.get_context("spawn")
    parent_conn, child_conn = ctx.Pipe(duplex=False)
    options = {
        "memory_limit_mb": memory_limit_mb,
        "cpu_seconds": int(math.ceil(timeout)) + 1,
    }
    process = ctx.Process(
        target=run_worker,
        args=(child_conn, source_code, context, options),
        name="report-sandbox",
        daemon=True,
    )
    try:
        process.start()
    except OSError as exc:
        logger.error("Could not start sandbox process: %s", exc)
        parent_conn.close()
        child_conn.close()
        return ExecutionResult.failure(f"Failed to create sandbox: {exc}", KIND_SANDBOX)
    child_conn.close()

    started_at = time.monotonic()
    try:
        result = _collect(parent_conn, process, timeout, startup_timeout)
    finally:
        parent_conn.close()
        _stop(process)

    logger.info(
        "Sandbox finished in %.2fs (%s)",
        time.monotonic() - started_at,
        "ok" if result.ok else result.kind,
    )
    return result


async def execute_async(source_code: str, context: Dict[str, Any], **kwargs: Any) -> ExecutionResult:
    """Run :func:`execute` in a worker thread so the event loop stays free."""

    return await asyncio.to_thread(execute, source_code, context, **kwargs)


__all__ = [
    "ExecutionResult",
    "check_source",
    "execute",
    "execute_async",
]
