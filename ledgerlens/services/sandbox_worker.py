"""Child-process side of the report sandbox.

This module is the entry point of the spawned interpreter. It must stay
cheap to import: the parent's time budget starts once the worker reports
``ready``, but spawn latency still delays every report run.
"""

from __future__ import annotations

import asyncio
import builtins
import inspect
import json as json_lib
import logging
import os
import sys
import traceback
import types
from typing import Any, Callable, Dict, Optional

import httpx

ENTRYPOINT = "fetch_report_data"
SOURCE_NAME = "<report>"

KIND_SANDBOX = "sandbox"
KIND_TIMEOUT = "timeout"
KIND_RUNTIME = "runtime"
KIND_INVALID_RESULT = "invalid_result"
KIND_MISSING_FUNCTION = "missing_function"
KIND_SYNTAX = "syntax"

ALLOWED_MODULES = frozenset(
    {
        "calendar",
        "collections",
        "datetime",
        "decimal",
        "functools",
        "itertools",
        "json",
        "math",
        "operator",
        "re",
        "statistics",
        "string",
        "time",
        "typing",
    }
)

BLOCKED_BUILTINS = frozenset(
    {
        "__import__",
        "breakpoint",
        "compile",
        "copyright",
        "credits",
        "delattr",
        "eval",
        "exec",
        "exit",
        "getattr",
        "globals",
        "help",
        "input",
        "KeyboardInterrupt",
        "license",
        "locals",
        "memoryview",
        "open",
        "quit",
        "setattr",
        "SystemExit",
        "vars",
    }
)

BLOCKED_ATTRIBUTES = frozenset(
    {
        "ag_code",
        "ag_frame",
        "cr_code",
        "cr_frame",
        "f_back",
        "f_builtins",
        "f_code",
        "f_globals",
        "f_locals",
        "f_trace",
        "gi_code",
        "gi_frame",
        "gi_yieldfrom",
        "tb_frame",
        "tb_next",
    }
)

# Public callables that look attributes up by string or evaluate annotations.
HIDDEN_MODULE_NAMES = {
    "functools": frozenset({"singledispatch", "singledispatchmethod"}),
    "operator": frozenset({"attrgetter", "methodcaller"}),
    "string": frozenset({"Formatter"}),
    "typing": frozenset({"ForwardRef", "evaluate_forward_ref", "get_type_hints"}),
}

Emit = Callable[[int, str], None]

_real_import = builtins.__import__


def is_blocked_attribute(name: str) -> bool:
    return name.startswith("_") or name.startswith("co_") or name in BLOCKED_ATTRIBUTES


def _module_allowed(module: types.ModuleType) -> bool:
    return module.__name__.partition(".")[0] in ALLOWED_MODULES


class ModuleProxy:
    """Read-only view of a whitelisted module.

    Only public names are exposed. Attributes that are themselves modules are
    dropped unless they belong to a whitelisted package, in which case they
    are proxied too.
    """

    def __init__(self, name: str, attrs: Dict[str, Any]):
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_attrs", attrs)

    def __getattr__(self, name: str) -> Any:
        try:
            return self._attrs[name]
        except KeyError:
            raise AttributeError(f"module '{self._name}' has no attribute '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"module '{self._name}' is read-only in report code")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"module '{self._name}' is read-only in report code")

    def __dir__(self):
        return sorted(self._attrs)

    def __repr__(self) -> str:
        return f"<module '{self._name}'>"


def proxy_module(
    module: types.ModuleType, seen: Optional[Dict[str, ModuleProxy]] = None
) -> ModuleProxy:
    seen = {} if seen is None else seen
    if module.__name__ in seen:
        return seen[module.__name__]
    attrs: Dict[str, Any] = {}
    proxy = ModuleProxy(module.__name__, attrs)
    seen[module.__name__] = proxy
    hidden = HIDDEN_MODULE_NAMES.get(module.__name__, frozenset())
    for name, value in vars(module).items():
        if name.startswith("_") or name in hidden:
            continue
        if isinstance(value, types.ModuleType):
            if not _module_allowed(value):
                continue
            value = proxy_module(value, seen)
        attrs[name] = value
    return proxy


def _safe_import(name, globals=None, locals=None, fromlist=(), level=0):
    root = name.partition(".")[0]
    if level != 0 or root not in ALLOWED_MODULES:
        raise ImportError(f"Import of '{name}' is not allowed in report code")
    return proxy_module(_real_import(name, globals, locals, fromlist, level))


def _safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    if is_blocked_attribute(name):
        raise AttributeError(f"Access to '{name}' is not allowed in report code")
    return getattr(obj, name, *default)


def safe_builtins() -> Dict[str, Any]:
    table = {
        name: value
        for name, value in vars(builtins).items()
        if name not in BLOCKED_BUILTINS and not (name.startswith("__") and name != "__build_class__")
    }
    table["__import__"] = _safe_import
    table["getattr"] = _safe_getattr
    return table


async def _resolve(awaitable: Any) -> Any:
    return await awaitable


class SandboxResponse:
    """Read-only view of an HTTP response handed to report code."""

    def __init__(self, response: httpx.Response):
        self.status = response.status_code
        self.status_code = response.status_code
        self.ok = response.is_success
        self.url = str(response.url)
        self.headers = dict(response.headers)
        self.text = response.text

    def json(self) -> Any:
        return json_lib.loads(self.text)

    def __await__(self):
        return _resolve_value(self).__await__()

    def __repr__(self) -> str:
        return f"<SandboxResponse {self.status} {self.url}>"


async def _resolve_value(value: Any) -> Any:
    return value


def _redact(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {
        key: ("<redacted>" if key.lower() == "authorization" else value)
        for key, value in (headers or {}).items()
    }


class SandboxFetch:
    """The only network capability exposed to report code."""

    def __init__(
        self,
        emit: Emit,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._emit = emit
        self._timeout = timeout
        self._transport = transport

    def __call__(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Any = None,
    ) -> SandboxResponse:
        self._emit(logging.INFO, f"Fetch request to: {method.upper()} {url}")
        self._emit(logging.INFO, f"Fetch headers: {json_lib.dumps(_redact(headers))}")
        try:
            with httpx.Client(
                timeout=self._timeout, trust_env=False, transport=self._transport
            ) as client:
                response = client.request(
                    method.upper(), url, headers=headers, params=params, json=json, data=data
                )
        except httpx.HTTPError as exc:
            self._emit(logging.ERROR, f"Fetch error: {exc}")
            raise
        self._emit(logging.INFO, f"Fetch response status: {response.status_code}")
        self._emit(logging.INFO, f"Response body: {response.text[:500]}...")
        return SandboxResponse(response)


class SandboxConsole:
    """``console``-style logger forwarding to the host."""

    def __init__(self, emit: Emit):
        self._emit = emit

    def _write(self, level: int, args: tuple) -> None:
        self._emit(level, " ".join(str(arg) for arg in args))

    def log(self, *args: Any) -> None:
        self._write(logging.INFO, args)

    info = log

    def debug(self, *args: Any) -> None:
        self._write(logging.DEBUG, args)

    def warn(self, *args: Any) -> None:
        self._write(logging.WARNING, args)

    warning = warn

    def error(self, *args: Any) -> None:
        self._write(logging.ERROR, args)


def build_namespace(emit: Emit, context: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "__builtins__": safe_builtins(),
        "__name__": "report",
        "fetch": SandboxFetch(emit),
        "console": SandboxConsole(emit),
        "context": context,
    }


def failure(message: str, kind: str, stack: Optional[str] = None) -> Dict[str, Any]:
    return {"error": message, "stack": stack, "kind": kind}


def run_report(source: str, namespace: Dict[str, Any]) -> Dict[str, Any]:
    """Execute ``source`` and call its entry point; never raises."""

    try:
        code = compile(source, SOURCE_NAME, "exec")
    except SyntaxError as exc:
        return failure(f"Invalid report code: {exc.msg} (line {exc.lineno})", KIND_SYNTAX)

    try:
        exec(code, namespace)
        func = namespace.get(ENTRYPOINT)
        if not callable(func):
            return failure(
                f"Invalid report code: {ENTRYPOINT} function not found", KIND_MISSING_FUNCTION
            )
        result = func(namespace["context"])
        if inspect.isawaitable(result):
            result = asyncio.run(_resolve(result))
    except BaseException as exc:
        message = str(exc) or type(exc).__name__
        return failure(message, KIND_RUNTIME, traceback.format_exc())

    if not isinstance(result, dict):
        return failure("Invalid report result: must return an object", KIND_INVALID_RESULT)
    if not isinstance(result.get("data"), list):
        return failure("Invalid report result: data must be an array", KIND_INVALID_RESULT)
    metadata = result.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        return failure("Invalid report result: metadata must be an object", KIND_INVALID_RESULT)

    try:
        payload = json_lib.loads(
            json_lib.dumps(
                {"data": result["data"], "metadata": metadata}, default=str, allow_nan=False
            )
        )
    except (TypeError, ValueError) as exc:
        return failure(f"Invalid report result: {exc}", KIND_INVALID_RESULT)
    return payload


def _apply_limits(options: Dict[str, Any]) -> None:
    if sys.platform == "win32":
        return
    import resource

    def cap(which: int, value: int) -> None:
        _, hard = resource.getrlimit(which)
        if hard != resource.RLIM_INFINITY:
            value = min(value, hard)
        resource.setrlimit(which, (value, value))

    memory_mb = options.get("memory_limit_mb")
    if memory_mb:
        cap(resource.RLIMIT_AS, int(memory_mb) * 1024 * 1024)
    cpu_seconds = options.get("cpu_seconds")
    if cpu_seconds:
        cap(resource.RLIMIT_CPU, int(cpu_seconds))
    cap(resource.RLIMIT_NOFILE, 64)
    cap(resource.RLIMIT_FSIZE, 0)


def run_worker(conn, source: str, context: Dict[str, Any], options: Dict[str, Any]) -> None:
    """Process target: set up isolation, run the report, send the result."""

    def emit(level: int, message: str) -> None:
        conn.send(("log", level, message))

    try:
        os.environ.clear()
        _apply_limits(options)
        namespace = build_namespace(emit, context)
    except Exception as exc:
        conn.send(("result", failure(f"Failed to create sandbox: {exc}", KIND_SANDBOX)))
        conn.close()
        return

    conn.send(("ready",))
    conn.send(("result", run_report(source, namespace)))
    conn.close()


__all__ = [
    "ALLOWED_MODULES",
    "BLOCKED_ATTRIBUTES",
    "ENTRYPOINT",
    "KIND_INVALID_RESULT",
    "KIND_MISSING_FUNCTION",
    "KIND_RUNTIME",
    "KIND_SANDBOX",
    "KIND_SYNTAX",
    "KIND_TIMEOUT",
    "ModuleProxy",
    "SandboxConsole",
    "SandboxFetch",
    "SandboxResponse",
    "build_namespace",
    "is_blocked_attribute",
    "proxy_module",
    "run_report",
    "run_worker",
    "safe_builtins",
]
