"""Lifecycle of one llama-cli child process.

A run goes Idle -> Running -> (Stopping | TimedOut | Closed) -> Resolved:

- Stopping: a stdout chunk contained a stop marker; SIGTERM is sent.
- TimedOut: the deadline fired first; SIGKILL is sent and the run fails
  with GenerationTimeoutError.
- Closed: the process exited on its own; whatever was read is the result.

Each run resolves exactly once. The first terminal transition wins and later
attempts (a natural close racing a stop marker, a late deadline) are no-ops.
"""
from __future__ import annotations
import asyncio
import codecs
import contextlib
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from llama_reply.common.errors import (
    GenerationError,
    GenerationTimeoutError,
    ProcessFailedError,
    ProcessNotFoundError,
)
from llama_reply.common.logging_setup import preview
from llama_reply.common.schema import RunState
from llama_reply.local_cli.stops import StopSequenceDetector

LOGGER = logging.getLogger("llama_reply.local_cli.supervisor")

ChunkCallback = Callable[[str], None]

class RunStatus(str, enum.Enum):
    STOPPED = "stopped"
    CLOSED = "closed"
    FINISHED = "finished"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

@dataclass(frozen=True)
class RunOutcome:
    """How a run ended without error, with the state it accumulated."""
    status: RunStatus
    state: RunState
    return_code: int | None = None
    elapsed_ms: int = 0

class RunHandle:
    """
    Caller-owned view of an active run.

    Holds the run's RunState, its reader tasks and its deadline timer.
    Nothing here is shared with other runs.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        state: RunState,
        *,
        detector: StopSequenceDetector,
        timeout_ms: int,
        read_size: int = 4096,
        terminate_grace_s: float = 5.0,
        on_chunk: ChunkCallback | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        self.state = state
        self.timeout_ms = timeout_ms
        self.status: RunStatus | None = None
        self._process = process
        self._detector = detector
        self._read_size = read_size
        self._grace = terminate_grace_s
        self._on_chunk = on_chunk
        self._future: asyncio.Future[RunOutcome] = loop.create_future()
        self._timer = loop.call_later(timeout_ms / 1000, self._on_deadline)
        self._stderr_task = loop.create_task(self._read_stderr())
        self._stdout_task = loop.create_task(self._read_stdout())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> RunOutcome:
        """Wait for the run to resolve, then reap the process."""
        try:
            return await self._future
        except asyncio.CancelledError:
            LOGGER.warning("Run cancelled by caller, killing pid %s", self.pid)
            self._signal(kill=True)
            raise
        finally:
            await self._cleanup()

    def finish(self) -> bool:
        """
        Force-finalize the run with whatever output has been read so far.

        Returns False if the run had already resolved.
        """
        if self.done:
            return False
        LOGGER.info("Run finalized on request after %s chunks", self.state.chunk_count)
        self._signal(kill=False)
        return self._resolve(RunStatus.FINISHED)

    def _resolve(
        self,
        status: RunStatus,
        *,
        error: GenerationError | None = None,
        return_code: int | None = None,
    ) -> bool:
        if self._future.done():
            return False
        self.state.response_sent = True
        self.status = status
        self._timer.cancel()
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(
                RunOutcome(status, self.state, return_code, elapsed_ms=self.state.elapsed_ms())
            )
        return True

    def _signal(self, *, kill: bool) -> None:
        if self._process.returncode is not None:
            return
        # the process may exit between the check and the signal
        with contextlib.suppress(ProcessLookupError):
            if kill:
                self._process.kill()
            else:
                self._process.terminate()

    def _on_deadline(self) -> None:
        if self.done:
            return
        LOGGER.warning("llama.cpp timeout reached after %sms", self.timeout_ms)
        self._signal(kill=True)
        state = self.state
        self._resolve(
            RunStatus.TIMED_OUT,
            error=GenerationTimeoutError(
                "Response timeout",
                {
                    "timeout": self.timeout_ms,
                    "responseLength": len(state.accumulated_output),
                    "chunkCount": state.chunk_count,
                    "partialResponse": preview(state.accumulated_output, 100),
                    "elapsedMs": state.elapsed_ms(),
                },
            ),
        )

    async def _read_stdout(self) -> None:
        assert self._process.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        state = self.state
        try:
            while True:
                data = await self._process.stdout.read(self._read_size)
                if state.response_sent:
                    return
                if not data:
                    break
                chunk = decoder.decode(data)
                state.accumulated_output += chunk
                state.chunk_count += 1
                LOGGER.debug("Received chunk %s (len=%s): %r", state.chunk_count, len(chunk), preview(chunk, 50))
                if self._on_chunk is not None:
                    self._on_chunk(chunk)
                if chunk and self._detector.feed(chunk):
                    LOGGER.info("Stop sequence detected, terminating process")
                    self._signal(kill=False)
                    self._resolve(RunStatus.STOPPED)
                    return
            state.accumulated_output += decoder.decode(b"", final=True)
            # wait for stderr too so diagnostics are complete on close
            await self._stderr_task
            return_code = await self._process.wait()
            LOGGER.info("llama.cpp process closed (code=%s, chunks=%s)", return_code, state.chunk_count)
            self._resolve(RunStatus.CLOSED, return_code=return_code)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            LOGGER.error("llama.cpp process error: %s", e)
            self._signal(kill=True)
            self._resolve(
                RunStatus.FAILED,
                error=ProcessFailedError(
                    f"llama.cpp process failed: {e}",
                    {
                        "chunkCount": state.chunk_count,
                        "partialResponse": preview(state.accumulated_output, 100),
                        "errorOutput": preview(state.accumulated_error_output, 200),
                    },
                ),
            )

    async def _read_stderr(self) -> None:
        assert self._process.stderr is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await self._process.stderr.read(self._read_size)
            if not data:
                break
            chunk = decoder.decode(data)
            self.state.accumulated_error_output += chunk
            LOGGER.debug("llama.cpp stderr: %r", preview(chunk))

    async def _cleanup(self) -> None:
        self._timer.cancel()
        if self._process.returncode is None:
            try:
                await asyncio.wait_for(self._process.wait(), timeout=self._grace)
            except asyncio.TimeoutError:
                LOGGER.warning("pid %s ignored SIGTERM for %ss, killing", self.pid, self._grace)
                self._signal(kill=True)
                await self._process.wait()
        for task in (self._stdout_task, self._stderr_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(self._stdout_task, self._stderr_task, return_exceptions=True)

class ProcessSupervisor:
    """
    Spawns llama-cli runs and hands each caller its own RunHandle.

    Args:
        executable: Path to the llama.cpp CLI binary.
        stop_markers: Literal markers that end a run.
        carry_tail: Detect markers split across stdout chunks.
        read_size: Max bytes per stdout read.
        terminate_grace_s: How long a terminated process may take to exit
            before it is killed.
    """

    def __init__(
        self,
        executable: str,
        *,
        stop_markers: Sequence[str] | None = None,
        carry_tail: bool = True,
        read_size: int = 4096,
        terminate_grace_s: float = 5.0,
    ) -> None:
        self.executable = executable
        self.stop_markers = stop_markers
        self.carry_tail = carry_tail
        self.read_size = read_size
        self.terminate_grace_s = terminate_grace_s

    def _detector(self) -> StopSequenceDetector:
        if self.stop_markers is None:
            return StopSequenceDetector(carry_tail=self.carry_tail)
        return StopSequenceDetector(self.stop_markers, carry_tail=self.carry_tail)

    async def start(
        self,
        args: Sequence[str],
        timeout_ms: int,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> RunHandle:
        """
        Spawn the executable and start supervising it.

        Raises:
            ProcessNotFoundError: The executable could not be spawned (missing,
                not executable, bad format or any other OS-level spawn error).
        """
        state = RunState()
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            # missing, not executable, wrong format: the run never started
            LOGGER.error("llama.cpp executable not usable at %s: %s", self.executable, e)
            raise ProcessNotFoundError(
                f"Unable to start llama.cpp executable '{self.executable}': {e.strerror or e}",
                {"executable": self.executable, "reason": str(e), "errno": e.errno},
            ) from e
        LOGGER.debug("Spawned %s (pid=%s, timeout=%sms)", self.executable, process.pid, timeout_ms)
        return RunHandle(
            process,
            state,
            detector=self._detector(),
            timeout_ms=timeout_ms,
            read_size=self.read_size,
            terminate_grace_s=self.terminate_grace_s,
            on_chunk=on_chunk,
        )

    async def run(
        self,
        args: Sequence[str],
        timeout_ms: int,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> RunOutcome:
        handle = await self.start(args, timeout_ms, on_chunk=on_chunk)
        return await handle.wait()

    async def probe(self, timeout_s: float = 5.0) -> bool:
        """True if `<executable> --help` exits 0 within `timeout_s`."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                "--help",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            LOGGER.warning("llama.cpp probe failed to start: %s", e)
            return False
        try:
            code = await asyncio.wait_for(process.wait(), timeout=timeout_s)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            LOGGER.warning("llama.cpp probe timed out after %ss", timeout_s)
            return False
        return code == 0
