r"""backend\app\services\prediction_gateway.py

Invoke the external predictor as a one-shot child process.

The predictor is started as ``<python> <script> <operation>``, receives the
request as a single JSON document on stdin and answers with any number of
diagnostic lines on stdout followed by one final JSON line.  Every
invocation yields exactly one ``PredictionOutcome``:

* ``Success``         exit code 0, parseable final line with ``success: true``
* ``ProcessFailure``  non-zero exit, or a payload reporting ``success: false``
* ``Timeout``         the deadline expired; the process was killed
* ``ParseFailure``    exit code 0 but the final line is not a JSON object
* ``StartFailure``    the process could not be started

The deadline timer and the exit handler race for a per-invocation
``DispatchLatch``; only the first to claim it produces the outcome.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, ClassVar, Dict, Optional, Protocol, Tuple, Union

from ..core.observability import PREDICTOR_DURATION, PREDICTOR_INVOCATIONS

LOGGER = logging.getLogger(__name__)

# The final result line can be large for big batches.
STREAM_LIMIT_BYTES = 10 * 1024 * 1024
REAP_TIMEOUT_SECONDS = 5.0


class Operation(str, Enum):
    PREDICT_DEMAND = "predict_demand"
    PREDICT_PRICING = "predict_pricing"


@dataclass(frozen=True)
class Success:
    kind: ClassVar[str] = "success"
    payload: Dict[str, Any]


@dataclass(frozen=True)
class ProcessFailure:
    kind: ClassVar[str] = "process_failure"
    exit_code: int
    stderr: str = ""


@dataclass(frozen=True)
class Timeout:
    kind: ClassVar[str] = "timeout"
    deadline_seconds: float


@dataclass(frozen=True)
class ParseFailure:
    kind: ClassVar[str] = "parse_failure"
    raw_output: str
    reason: str = ""


@dataclass(frozen=True)
class StartFailure:
    kind: ClassVar[str] = "start_failure"
    cause: str


PredictionOutcome = Union[Success, ProcessFailure, Timeout, ParseFailure, StartFailure]


class PredictionGateway(Protocol):
    async def invoke(
        self, operation: Operation, payload: Dict[str, Any], deadline: float
    ) -> PredictionOutcome: ...


class DispatchLatch:
    """One-shot flag: ``claim`` returns True exactly once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False

    def claim(self) -> bool:
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True

    @property
    def claimed(self) -> bool:
        return self._claimed


def parse_final_line(stdout: str) -> PredictionOutcome:
    """Interpret the last non-empty stdout line of a clean exit."""

    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        return ParseFailure(raw_output=stdout, reason="predictor produced no output")
    try:
        payload = json.loads(lines[-1])
    except json.JSONDecodeError as exc:
        return ParseFailure(raw_output=stdout, reason=str(exc))
    if not isinstance(payload, dict):
        return ParseFailure(raw_output=stdout, reason="final line is not a JSON object")
    if payload.get("success") is not True:
        error = payload.get("error") or "predictor reported failure"
        return ProcessFailure(exit_code=0, stderr=str(error))
    return Success(payload=payload)


def classify_exit(returncode: Optional[int], stdout: str, stderr: str) -> PredictionOutcome:
    if returncode != 0:
        return ProcessFailure(exit_code=returncode if returncode is not None else -1, stderr=stderr)
    return parse_final_line(stdout)


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


class SubprocessPredictionGateway:
    """Run the predictor script once per call, bounded by a deadline."""

    def __init__(self, executable: str, script: str, max_concurrent: int = 0) -> None:
        self.executable = executable
        self.script = script
        self.max_concurrent = max(int(max_concurrent), 0)
        self._semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]"
        self._semaphores = weakref.WeakKeyDictionary()

    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        if self.max_concurrent <= 0:
            yield
            return
        loop = asyncio.get_running_loop()
        semaphore = self._semaphores.get(loop)
        if semaphore is None:
            semaphore = asyncio.Semaphore(self.max_concurrent)
            self._semaphores[loop] = semaphore
        async with semaphore:
            yield

    # ------------------------------------------------------------------
    async def invoke(
        self, operation: Operation, payload: Dict[str, Any], deadline: float
    ) -> PredictionOutcome:
        async with self._slot():
            started = time.perf_counter()
            outcome = await self._run(operation, payload, deadline)
            elapsed = time.perf_counter() - started

        PREDICTOR_INVOCATIONS.labels(operation.value, outcome.kind).inc()
        PREDICTOR_DURATION.labels(operation.value).observe(elapsed)
        LOGGER.info(
            "Predictor %s finished with %s in %.2fs", operation.value, outcome.kind, elapsed
        )
        return outcome

    async def _run(
        self, operation: Operation, payload: Dict[str, Any], deadline: float
    ) -> PredictionOutcome:
        loop = asyncio.get_running_loop()
        body = json.dumps(payload, default=str).encode("utf-8")

        LOGGER.info(
            "Starting predictor %s %s %s (%d bytes, deadline %.1fs)",
            self.executable,
            self.script,
            operation.value,
            len(body),
            deadline,
        )
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                self.script,
                operation.value,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT_BYTES,
            )
        except (OSError, ValueError) as exc:
            LOGGER.error("Failed to start predictor %s: %s", self.executable, exc)
            return StartFailure(cause=f"{type(exc).__name__}: {exc}")

        latch = DispatchLatch()
        result: "asyncio.Future[PredictionOutcome]" = loop.create_future()

        def _dispatch(outcome: PredictionOutcome) -> None:
            if not result.done():
                result.set_result(outcome)

        def _on_deadline() -> None:
            if not latch.claim():
                return
            LOGGER.error(
                "Predictor %s exceeded %.1fs; killing pid %s", operation.value, deadline, process.pid
            )
            _kill(process)
            _dispatch(Timeout(deadline_seconds=deadline))

        timer = loop.call_later(deadline, _on_deadline)
        collector = asyncio.ensure_future(self._communicate(process, body, operation))

        def _on_exit(task: "asyncio.Future[Tuple[int, str, str]]") -> None:
            timer.cancel()
            if not latch.claim():
                LOGGER.info("Ignoring late exit of predictor pid %s", process.pid)
                return
            if task.cancelled():
                _dispatch(ProcessFailure(exit_code=-1, stderr="output collection cancelled"))
                return
            exc = task.exception()
            if exc is not None:
                LOGGER.error("Reading predictor output failed: %s", exc)
                _kill(process)
                code = process.returncode if process.returncode is not None else -1
                _dispatch(ProcessFailure(exit_code=code, stderr=str(exc)))
                return
            returncode, stdout, stderr = task.result()
            outcome = classify_exit(returncode, stdout, stderr)
            if isinstance(outcome, ProcessFailure):
                LOGGER.error(
                    "Predictor %s failed with code %s: %s",
                    operation.value,
                    outcome.exit_code,
                    outcome.stderr.strip()[:2000],
                )
            elif isinstance(outcome, ParseFailure):
                LOGGER.error(
                    "Unparseable predictor output (%s): %s", outcome.reason, stdout[-2000:]
                )
            _dispatch(outcome)

        collector.add_done_callback(_on_exit)

        try:
            return await result
        finally:
            timer.cancel()
            if not collector.done():
                # Timed out or cancelled: make sure the child is gone and reaped.
                _kill(process)
                await asyncio.wait({collector}, timeout=REAP_TIMEOUT_SECONDS)
                if not collector.done():
                    collector.cancel()

    async def _communicate(
        self, process: asyncio.subprocess.Process, body: bytes, operation: Operation
    ) -> Tuple[int, str, str]:
        assert process.stdin is not None
        assert process.stdout is not None
        assert process.stderr is not None

        async def _feed() -> None:
            try:
                process.stdin.write(body)
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                LOGGER.warning("Predictor closed its input before reading the request")
            finally:
                process.stdin.close()

        async def _read_stdout() -> str:
            chunks = []
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace")
                chunks.append(text)
                LOGGER.debug("predictor[%s] %s", operation.value, text.rstrip())
            return "".join(chunks)

        async def _read_stderr() -> str:
            data = await process.stderr.read()
            text = data.decode("utf-8", errors="replace")
            if text.strip():
                LOGGER.debug("predictor[%s] stderr: %s", operation.value, text.strip()[:2000])
            return text

        _, stdout, stderr = await asyncio.gather(_feed(), _read_stdout(), _read_stderr())
        returncode = await process.wait()
        return returncode, stdout, stderr
