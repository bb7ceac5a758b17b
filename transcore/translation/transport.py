"""
Worker RPC Transport
Request/response bridge to the translation worker process.

Architecture:
1. Spawns the worker (``python -m transcore.translation.worker``)
2. Exchanges one JSON object per line over stdin/stdout
3. Correlates responses to calls by id, never by arrival order

Messages:
    host -> worker: {"id": 1, "name": "translate", "args": [...]}
    worker -> host: {"id": 1, "result": ...} | {"id": 1, "error": {"message", "stack", ...}}
    worker -> host: {"fatal": {"message", "stack"}}  (not tied to a call)
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import itertools
import json
import logging
import sys
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from transcore.settings import settings
from .exceptions import EngineInitError, RemoteCallError, TransportClosedError

logger = logging.getLogger(__name__)

WORKER_MODULE = "transcore.translation.worker"
STREAM_LIMIT = 16 * 1024 * 1024  # Max bytes per JSON line

ErrorListener = Callable[[Exception], None]


class WorkerChannel(ABC):
    """Message pipe to an isolated worker"""

    @abstractmethod
    async def send(self, message: dict) -> None:
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[dict]:
        """Yield worker messages until the worker goes away"""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class SubprocessChannel(WorkerChannel):
    """Worker running as a child Python process"""

    def __init__(self, process: asyncio.subprocess.Process):
        self._process = process
        self._stderr_task = asyncio.ensure_future(self._relay_stderr())

    @classmethod
    async def start(cls, command: Optional[List[str]] = None) -> "SubprocessChannel":
        command = command or [sys.executable, "-m", WORKER_MODULE]
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
        )
        logger.info("Started translation worker (pid %s)", process.pid)
        return cls(process)

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid

    async def send(self, message: dict) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            raise TransportClosedError("Worker stdin is closed")
        try:
            stdin.write((json.dumps(message) + "\n").encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportClosedError(f"Worker pipe broken: {e}") from e

    async def messages(self) -> AsyncIterator[dict]:
        stdout = self._process.stdout
        while True:
            line = await stdout.readline()
            if not line:
                return
            try:
                yield json.loads(line)
            except ValueError:
                logger.warning("Ignoring malformed worker output: %r", line[:200])

    async def _relay_stderr(self):
        stderr = self._process.stderr
        while True:
            line = await stderr.readline()
            if not line:
                return
            logger.debug("[worker %s] %s", self._process.pid, line.decode("utf-8", "replace").rstrip())

    async def close(self) -> None:
        if self._process.stdin and not self._process.stdin.is_closing():
            self._process.stdin.close()
        if self._process.returncode is None:
            self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
        self._stderr_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._stderr_task
        logger.info("Translation worker stopped (pid %s)", self._process.pid)


@dataclass
class PendingCall:
    future: asyncio.Future
    callsite: str
    stack: str


class RemoteExports:
    """
    Any attribute is a remote method: ``await exports.ping()``.

    ``__await__`` is never forwarded so the proxy is not mistaken for an
    awaitable.
    """

    RESERVED = "__await__"

    def __init__(self, transport: "WorkerTransport"):
        self._transport = transport

    def __getattr__(self, name: str) -> Callable[..., Awaitable[Any]]:
        if name == self.RESERVED:
            raise AttributeError(name)
        return functools.partial(self._transport.call, name)


class WorkerTransport:
    """
    Correlates calls to a worker with their responses.

    Usage:
        transport = await WorkerTransport.spawn(settings.worker_options())
        await transport.call("load_model", "ja-en", files)
        text = await transport.translate("ja-en", "こんにちは")
        await transport.close()
    """

    def __init__(self, channel: WorkerChannel):
        self._channel = channel
        self._serial = itertools.count(1)
        self._pending: Dict[int, PendingCall] = {}
        self._listeners: List[ErrorListener] = []
        self._closed = False
        self._torn_down = False
        self.errors: List[Exception] = []
        self.exports = RemoteExports(self)
        self._reader = asyncio.ensure_future(self._read_loop())

    @classmethod
    async def spawn(
        cls,
        options: dict,
        expected_paths: Optional[List[str]] = None,
        channel_factory: Callable[[], Awaitable[WorkerChannel]] = SubprocessChannel.start,
        init_timeout: Optional[float] = None,
    ) -> "WorkerTransport":
        """
        Start a worker and initialize it with ``options``.

        Raises:
            EngineInitError: If the worker cannot start or initialize
        """
        init_timeout = init_timeout or settings.worker_init_timeout
        expected = [WORKER_MODULE, *(expected_paths or [])]

        try:
            channel = await channel_factory()
        except OSError as e:
            raise EngineInitError(f"could not start worker process: {e}", expected) from e

        transport = cls(channel)
        try:
            await asyncio.wait_for(transport.call("initialize", options), timeout=init_timeout)
        except asyncio.TimeoutError as e:
            await transport.close()
            raise EngineInitError(
                f"Worker initialization timeout after {init_timeout:g} seconds", expected
            ) from e
        except (RemoteCallError, TransportClosedError) as e:
            await transport.close()
            raise EngineInitError(str(e), expected) from e

        logger.info("Translation worker initialized")
        return transport

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def add_error_listener(self, listener: ErrorListener):
        """Observe worker failures that are not tied to any call"""
        self._listeners.append(listener)

    async def call(self, name: str, *args: Any) -> Any:
        """Invoke ``name(*args)`` in the worker and wait for its response"""
        if self._closed:
            raise TransportClosedError(f"Worker transport closed, cannot call {name}")

        call_id = next(self._serial)
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = PendingCall(
            future=future,
            callsite=f"{name}({', '.join(str(arg) for arg in args)})",
            stack="".join(traceback.format_stack()[:-1]),
        )
        try:
            await self._channel.send({"id": call_id, "name": name, "args": list(args)})
            return await future
        finally:
            self._pending.pop(call_id, None)

    async def initialize(self, options: dict) -> Any:
        return await self.call("initialize", options)

    async def load_model(self, key: str, files: Dict[str, str]) -> Any:
        return await self.call("load_model", key, files)

    async def translate(self, key: str, text: str, html: bool = False) -> str:
        return await self.call("translate", key, text, {"html": html})

    async def _read_loop(self):
        try:
            async for message in self._channel.messages():
                self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - reader failures go to the error sink
            self._report(e)

        if not self._closed:
            self._closed = True
            error = TransportClosedError("Worker exited unexpectedly")
            self._report(error)
            self._fail_pending(error)

    def _dispatch(self, message: Any):
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object worker message: %r", message)
            return

        if "fatal" in message:
            self._report(self._remote_error(message["fatal"]))
            return

        call_id = message.get("id")
        pending = self._pending.pop(call_id, None) if isinstance(call_id, int) else None
        if pending is None:
            logger.debug("Received message with unknown id: %r", message)
            return
        if pending.future.done():
            return

        if message.get("error") is not None:
            pending.future.set_exception(self._remote_error(message["error"], pending))
        else:
            pending.future.set_result(message.get("result"))

    @staticmethod
    def _remote_error(error: Any, pending: Optional[PendingCall] = None) -> RemoteCallError:
        if not isinstance(error, dict):
            error = {"message": str(error)}
        message = str(error.get("message") or "Unknown worker error")
        remote_stack = str(error.get("stack") or "")
        details = {k: v for k, v in error.items() if k not in ("message", "stack")}

        if pending is None:
            return RemoteCallError(message, stack=remote_stack, remote_stack=remote_stack, details=details)

        stack = f"{remote_stack}\n{pending.stack}" if remote_stack else pending.stack
        return RemoteCallError(
            f"{message} (response to {pending.callsite})",
            stack=stack,
            remote_stack=remote_stack,
            callsite=pending.callsite,
            details=details,
        )

    def _report(self, error: Exception):
        self.errors.append(error)
        logger.error("Translation worker error: %s", error)
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:  # noqa: BLE001
                logger.exception("Worker error listener failed")

    def _fail_pending(self, error: Exception):
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if not call.future.done():
                call.future.set_exception(error)

    async def close(self):
        """Stop the worker and reject every call still waiting for a response"""
        if self._torn_down:
            return
        self._torn_down = True
        self._closed = True
        self._fail_pending(TransportClosedError("Worker transport closed"))
        self._reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._reader
        await self._channel.close()
