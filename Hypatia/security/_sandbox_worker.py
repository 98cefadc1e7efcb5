"""
Sandbox worker process.

Started by `SandboxedExecutor` as `python -I _sandbox_worker.py`. Reads one
JSON object `{"code": ...}` from stdin, runs the script against a
restricted set of builtins and reports back as JSON lines on stdout:

    {"type": "log", "payload": str}
    {"type": "finish", "payload": {"data": str, "summary": str}}
    {"type": "done"}
    {"type": "error", "payload": str}

This module must stay importable with the standard library alone.
"""

import builtins
import io
import json
import sys
import traceback
import types

SCRIPT_FILENAME = "<simulation>"

ALLOWED_MODULES = frozenset({
    "math",
    "random",
    "statistics",
    "csv",
    "io",
    "json",
    "itertools",
    "collections",
    "datetime",
    "functools",
    "string",
    "re",
    "decimal",
    "fractions",
})

# Modules exposed through a reduced namespace
MODULE_OVERRIDES = {
    "io": types.SimpleNamespace(StringIO=io.StringIO, BytesIO=io.BytesIO),
}

REMOVED_BUILTINS = ("open", "exec", "eval", "input", "compile", "breakpoint", "help", "exit", "quit")

FINISH_CONTRACT = "hypatia.finish() requires two string arguments: data (CSV format) and summary."


class _FinishSignal(BaseException):
    """Stops the script once finish() has reported."""


class Channel:
    """Line-oriented JSON writer over the real stdout."""

    def __init__(self, stream):
        self._stream = stream

    def send(self, message_type, payload=None):
        message = {"type": message_type}
        if payload is not None:
            message["payload"] = payload
        self._stream.write(json.dumps(message) + "\n")
        self._stream.flush()


def _format_arg(arg):
    if isinstance(arg, str):
        return arg
    try:
        return json.dumps(arg)
    except (TypeError, ValueError):
        return str(arg)


def _guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
    root = name.split(".")[0]
    if level != 0 or root not in ALLOWED_MODULES:
        raise ImportError(f"Import of '{name}' is not allowed in the simulation sandbox")
    if root in MODULE_OVERRIDES:
        return MODULE_OVERRIDES[root]
    return builtins.__import__(name, globals, locals, fromlist, level)


class HypatiaAPI:
    """The `hypatia` object visible to scripts."""

    def __init__(self, channel):
        self._channel = channel
        self.finished = False

    def log(self, *args):
        self._channel.send("log", " ".join(_format_arg(a) for a in args))

    def finish(self, data, summary):
        if not isinstance(data, str) or not isinstance(summary, str):
            raise TypeError(FINISH_CONTRACT)
        if self.finished:
            return
        self.finished = True
        self._channel.send("log", "Simulation finished. Data passed to next step.")
        self._channel.send("finish", {"data": data, "summary": summary})
        raise _FinishSignal()


def build_globals(api):
    safe_builtins = dict(vars(builtins))
    for name in REMOVED_BUILTINS:
        safe_builtins.pop(name, None)
    safe_builtins["__import__"] = _guarded_import
    safe_builtins["print"] = lambda *args, **kwargs: api.log(*args)
    return {
        "__builtins__": safe_builtins,
        "__name__": "__simulation__",
        "hypatia": api,
        "log": api.log,
    }


def describe_exception(exc):
    """`[TypeName] message (line N)` using the innermost script frame."""
    line = None
    for frame in traceback.extract_tb(exc.__traceback__):
        if frame.filename == SCRIPT_FILENAME:
            line = frame.lineno
    if isinstance(exc, SyntaxError):
        line = exc.lineno
        message = exc.msg
    else:
        message = str(exc)
    text = f"[{type(exc).__name__}] {message}"
    if line is not None:
        text += f" (line {line})"
    return text


def run(code, channel):
    api = HypatiaAPI(channel)
    try:
        compiled = compile(code, SCRIPT_FILENAME, "exec")
        exec(compiled, build_globals(api))
    except _FinishSignal:
        return
    except Exception as e:
        if api.finished:
            return
        channel.send("error", describe_exception(e))
        return

    if not api.finished:
        channel.send("log", "Simulation ended without calling hypatia.finish().")
    channel.send("done")


def main():
    channel = Channel(sys.stdout)
    # Stray writes must not corrupt the message channel
    sys.stdout = sys.stderr
    try:
        request = json.loads(sys.stdin.readline() or "{}")
    except ValueError as e:
        channel.send("error", f"[ProtocolError] {e}")
        return 1
    code = request.get("code")
    if not isinstance(code, str):
        channel.send("error", "[ProtocolError] request is missing a 'code' string")
        return 1
    run(code, channel)
    return 0


if __name__ == "__main__":
    sys.exit(main())
