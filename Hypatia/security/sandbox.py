"""
Sandbox: isolated execution of model-authored simulation scripts.

Provides:
- A private working directory per editing session
- A fresh child interpreter per script, with API keys stripped from its environment
- A JSON-lines message channel (log / finish / done / error)
- Wall-clock timeout enforcement

Each `execute()` resolves to exactly one of `Finished`, `CompletedWithoutFinish`
or `ExecutionError`; a child interpreter that cannot be started raises
SandboxExecutionError instead.
"""

from __future__ import annotations

__all__ = [
    "Finished",
    "CompletedWithoutFinish",
    "ExecutionError",
    "Outcome",
    "SandboxedExecutor",
    "WORKER_PATH",
]

import asyncio
import json
import logging
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from ..infrastructure.errors import SandboxExecutionError
from ..utils import console

logger = logging.getLogger("hypatia.security")

WORKER_PATH = Path(__file__).parent / "_sandbox_worker.py"

# Per-line limit for the message channel; finish() payloads carry whole datasets
_STREAM_LIMIT = 16 * 1024 * 1024

_BLOCKED_ENV_MARKERS = ("KEY", "SECRET", "TOKEN", "PASSWORD", "CREDENTIAL")


@dataclass(frozen=True)
class Finished:
    data: str
    summary: str


@dataclass(frozen=True)
class CompletedWithoutFinish:
    message: str = "Code ran without errors but did not call hypatia.finish()."


@dataclass(frozen=True)
class ExecutionError:
    message: str


Outcome = Union[Finished, CompletedWithoutFinish, ExecutionError]

LogCallback = Callable[[str], None]


class SandboxedExecutor:
    """
    Runs script text in a child interpreter.

    Use as an async context manager; one instance per editing session:

        async with SandboxedExecutor(timeout=30) as sandbox:
            outcome = await sandbox.execute(code, on_log=print)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        python_executable: Optional[str] = None,
        on_log: Optional[LogCallback] = None,
    ):
        self.timeout = timeout
        self.python_executable = python_executable or sys.executable
        self.on_log = on_log
        self._workdir: Optional[str] = None
        self._process: Optional[asyncio.subprocess.Process] = None

    async def __aenter__(self) -> "SandboxedExecutor":
        self._workdir = tempfile.mkdtemp(prefix="hypatia-sandbox-")
        logger.debug("Sandbox session started in %s", self._workdir)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._terminate()
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            logger.debug("Sandbox session %s removed", self._workdir)
            self._workdir = None

    @property
    def active(self) -> bool:
        return self._workdir is not None

    def _safe_env(self) -> dict[str, str]:
        env = {
            name: value
            for name, value in os.environ.items()
            if not any(marker in name.upper() for marker in _BLOCKED_ENV_MARKERS)
        }
        env["HOME"] = self._workdir
        env["TMPDIR"] = self._workdir
        return env

    async def execute(self, script: str, on_log: Optional[LogCallback] = None) -> Outcome:
        """
        Run one script body to an outcome.

        Log lines are delivered to `on_log` as they arrive.
        """
        if self._workdir is None:
            raise RuntimeError("SandboxedExecutor must be entered with 'async with' before execute()")

        emit = on_log or self.on_log or console.sandbox_output
        try:
            process = await asyncio.create_subprocess_exec(
                self.python_executable,
                "-I",
                str(WORKER_PATH),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._workdir,
                env=self._safe_env(),
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            raise SandboxExecutionError(
                f"Could not start the sandbox interpreter: {e}",
                context={"python": self.python_executable},
            ) from e
        self._process = process
        stderr_task = asyncio.ensure_future(process.stderr.read())

        try:
            process.stdin.write((json.dumps({"code": script}) + "\n").encode("utf-8"))
            await process.stdin.drain()
            process.stdin.close()

            try:
                outcome = await asyncio.wait_for(self._read_outcome(process, emit), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("Sandbox script exceeded %ss", self.timeout)
                return ExecutionError(f"Execution timed out after {self.timeout:g}s")

            if outcome is None:
                await process.wait()
                stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
                tail = stderr[-2000:] if stderr else "no output"
                return ExecutionError(
                    f"Sandbox process exited with code {process.returncode} without a result: {tail}"
                )
            return outcome
        except (BrokenPipeError, ConnectionResetError) as e:
            return ExecutionError(f"Sandbox process closed its input early: {e}")
        finally:
            await self._terminate()
            if not stderr_task.done():
                stderr_task.cancel()

    async def _read_outcome(self, process: asyncio.subprocess.Process, emit: LogCallback) -> Optional[Outcome]:
        """Consume channel messages until a terminal one; None on EOF."""
        while True:
            line = await process.stdout.readline()
            if not line:
                return None
            try:
                message = json.loads(line)
            except ValueError:
                logger.debug("Ignoring non-protocol line from sandbox: %r", line[:200])
                continue

            kind = message.get("type")
            payload = message.get("payload")
            if kind == "log":
                emit(str(payload))
            elif kind == "finish":
                return Finished(data=payload["data"], summary=payload["summary"])
            elif kind == "done":
                return CompletedWithoutFinish()
            elif kind == "error":
                return ExecutionError(str(payload))

    async def _terminate(self) -> None:
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
