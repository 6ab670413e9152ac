"""Concrete transports for the worker message channel.

    InProcessWorkerChannel   caller ⇄ asyncio.Queue pair ⇄ WorkerServer task
    SubprocessWorkerChannel  caller ⇄ JSON lines over pipes ⇄ python -m src.worker
    StdioChannel             worker-side end of the subprocess transport

Messages are JSON round-tripped even in-process, so a payload that could
not cross a process boundary fails the same way in both modes.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, TextIO

import structlog

from src.interfaces.worker_channel import IWorkerChannel
from src.utils.errors import WorkerError, WorkerProtocolError

if TYPE_CHECKING:
    from src.worker.server import WorkerServer

logger = structlog.get_logger(logger_name=__name__)

# Sentinel put on a queue to end the reader on the other side.
_CLOSED = object()

# Search results and vector batches easily exceed asyncio's 64 KiB default.
_STREAM_LIMIT = 2**26

_SHUTDOWN_TIMEOUT_SECONDS = 10.0


def _encode(message: dict[str, Any]) -> str:
    try:
        return json.dumps(message, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise WorkerProtocolError(message=f"Message is not JSON-serializable: {exc}") from exc


def _decode(line: str | bytes) -> dict[str, Any] | None:
    try:
        message = json.loads(line)
    except json.JSONDecodeError as exc:
        logger.warning("worker_channel_undecodable_line", error=str(exc))
        return None
    if not isinstance(message, dict):
        logger.warning("worker_channel_non_object_message", kind=type(message).__name__)
        return None
    return message


# ---------------------------------------------------------------------------
# In-process transport
# ---------------------------------------------------------------------------


class _QueueEnd(IWorkerChannel):
    """One side of a queue pair: sends on *outbox*, receives from *inbox*."""

    def __init__(self, inbox: asyncio.Queue, outbox: asyncio.Queue) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise WorkerError(message="Channel is closed")
        await self._outbox.put(_decode(_encode(message)))

    async def receive(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            item = await self._inbox.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        self.close_nowait()

    def close_nowait(self) -> None:
        # The queues are unbounded, so put_nowait never raises QueueFull.
        if self._closed:
            return
        self._closed = True
        self._outbox.put_nowait(_CLOSED)


class InProcessWorkerChannel(IWorkerChannel):
    """Runs a :class:`~src.worker.server.WorkerServer` as a task in this loop.

    The server only ever blocks in provider calls, which push model
    inference onto threads, so the caller's loop stays responsive.
    Call :meth:`start` before use.
    """

    def __init__(self, server: WorkerServer) -> None:
        to_worker: asyncio.Queue = asyncio.Queue()
        to_caller: asyncio.Queue = asyncio.Queue()
        self._server = server
        self._caller_end = _QueueEnd(inbox=to_caller, outbox=to_worker)
        self._worker_end = _QueueEnd(inbox=to_worker, outbox=to_caller)
        self._task: asyncio.Task | None = None

    @property
    def is_closed(self) -> bool:
        return self._caller_end.is_closed

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(
                self._server.serve(self._worker_end), name="inprocess-worker"
            )
            # However the server stops, the caller's receive loop must end too.
            self._task.add_done_callback(lambda _task: self._worker_end.close_nowait())
            logger.debug("inprocess_worker_started")

    async def send(self, message: dict[str, Any]) -> None:
        await self._caller_end.send(message)

    def receive(self) -> AsyncIterator[dict[str, Any]]:
        return self._caller_end.receive()

    async def close(self) -> None:
        if self._caller_end.is_closed:
            return
        await self._caller_end.close()
        if self._task is not None:
            # In-flight requests are abandoned, not drained.
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        await self._worker_end.close()
        logger.debug("inprocess_worker_stopped")


# ---------------------------------------------------------------------------
# Subprocess transport
# ---------------------------------------------------------------------------


class SubprocessWorkerChannel(IWorkerChannel):
    """Spawns ``python -m src.worker`` and exchanges JSON lines with it.

    The child's stdout carries only protocol messages; it logs to stderr,
    which is inherited so worker logs show up in the parent's terminal.

    Parameters
    ----------
    config_path:
        Passed to the worker as ``--config`` so both sides share settings.
    command:
        Override the spawned command line entirely (tests).
    """

    def __init__(
        self,
        config_path: str | None = None,
        command: list[str] | None = None,
    ) -> None:
        if command is None:
            command = [sys.executable, "-m", "src.worker"]
            if config_path:
                command += ["--config", config_path]
        self._command = command
        self._process: asyncio.subprocess.Process | None = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        if self._process is not None:
            return
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise WorkerError(message=f"Could not start worker process: {exc}") from exc
        logger.info("worker_process_started", pid=self._process.pid)

    async def send(self, message: dict[str, Any]) -> None:
        if self._closed or self._process is None or self._process.stdin is None:
            raise WorkerError(message="Channel is closed")
        line = _encode(message) + "\n"
        try:
            self._process.stdin.write(line.encode("utf-8"))
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise WorkerError(message=f"Worker process is gone: {exc}") from exc

    async def receive(self) -> AsyncIterator[dict[str, Any]]:
        if self._process is None or self._process.stdout is None:
            return
        while True:
            try:
                line = await self._process.stdout.readline()
            except ValueError as exc:
                # Raised by StreamReader when a line exceeds the limit.
                raise WorkerProtocolError(message=f"Worker message too large: {exc}") from exc
            if not line:
                logger.info("worker_process_stdout_closed", returncode=self._process.returncode)
                return
            message = _decode(line)
            if message is not None:
                yield message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        process = self._process
        if process is None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), timeout=_SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("worker_process_kill", pid=process.pid)
            process.kill()
            await process.wait()
        logger.info("worker_process_exited", returncode=process.returncode)


class StdioChannel(IWorkerChannel):
    """Worker-side channel over this process's stdin and stdout.

    Call :meth:`open` from inside the running event loop before use.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._reader: asyncio.StreamReader | None = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=_STREAM_LIMIT)
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, self._stdin)
        self._reader = reader

    async def send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise WorkerError(message="Channel is closed")
        # One write per message; the loop is single-threaded so lines never interleave.
        self._stdout.write(_encode(message) + "\n")
        self._stdout.flush()

    async def receive(self) -> AsyncIterator[dict[str, Any]]:
        if self._reader is None:
            raise WorkerError(message="StdioChannel.open() was not called")
        while True:
            line = await self._reader.readline()
            if not line:
                return
            message = _decode(line)
            if message is not None:
                yield message

    async def close(self) -> None:
        self._closed = True
