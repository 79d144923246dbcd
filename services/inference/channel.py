"""Message-passing channel to the background inference worker.

The channel owns the worker transport, a correlation table of pending
requests and the initialization state machine:

    idle -> ready
    idle/needs_reinit -> needs_reinit   (failed attempt, attempts left)
    *    -> unavailable                 (attempts exhausted, no factory, closed)
    ready -> needs_reinit               (worker reported a fatal error)

Correlation ids come from a counter that is never reset, so a late reply
from a replaced worker can never match a request sent to its successor.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Set

from models.classification import ChannelRequest
from services.errors import ChannelError, ChannelTimeoutError, ChannelUnavailableError, InferenceFailure
from utils.settings import ChannelConfig

logger = logging.getLogger(__name__)


class WorkerTransport(Protocol):
    """Connection to one isolated execution context.

    `start` must arrange for both callbacks to run on the event loop thread.
    """

    def start(
        self,
        on_message: Callable[[Dict[str, Any]], None],
        on_error: Callable[[BaseException], None],
    ) -> None: ...

    def post(self, message: Dict[str, Any]) -> None: ...

    def terminate(self) -> None: ...


TransportFactory = Callable[[], WorkerTransport]


class ChannelState(str, Enum):
    IDLE = "idle"
    READY = "ready"
    NEEDS_REINIT = "needs_reinit"
    UNAVAILABLE = "unavailable"


@dataclass
class PendingEntry:
    request: ChannelRequest
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None
    settled: bool = False


class PendingTable:
    """Correlation id -> pending continuation.

    An entry is inserted on send and removed exactly once, by whichever of
    reply, timeout, channel error or caller cancellation happens first.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, PendingEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def insert(self, entry: PendingEntry) -> None:
        if entry.request.id in self._entries:
            raise RuntimeError(f"Correlation id {entry.request.id} is already pending")
        self._entries[entry.request.id] = entry

    def lookup(self, request_id: int) -> Optional[PendingEntry]:
        return self._entries.get(request_id)

    def _take(self, request_id: int) -> Optional[PendingEntry]:
        entry = self._entries.pop(request_id, None)
        if entry is None or entry.settled:
            return None
        entry.settled = True
        if entry.timer is not None:
            entry.timer.cancel()
        return entry

    def resolve(self, request_id: int, value: Any) -> bool:
        entry = self._take(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(value)
        return True

    def reject(self, request_id: int, exc: BaseException) -> bool:
        entry = self._take(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(exc)
        return True

    def discard(self, request_id: int) -> bool:
        """Drop an entry without touching its future (used when the caller gave up)."""
        return self._take(request_id) is not None

    def reject_all(self, exc: BaseException) -> int:
        count = 0
        for request_id in list(self._entries):
            if self.reject(request_id, exc):
                count += 1
        return count


class BackgroundChannel:
    """Owned connection to the background worker; one per application."""

    def __init__(
        self,
        transport_factory: Optional[TransportFactory],
        config: ChannelConfig | None = None,
    ) -> None:
        self._factory = transport_factory
        self.config = config or ChannelConfig()
        self._pending = PendingTable()
        self._ids = itertools.count(1)
        self._transport: Optional[WorkerTransport] = None
        self._generation = 0
        self._attempts = 0
        self._init_task: Optional[asyncio.Future] = None
        self._terminations: Set[asyncio.Future] = set()
        self._state = ChannelState.IDLE if transport_factory is not None else ChannelState.UNAVAILABLE
        self.last_error: Optional[str] = None if transport_factory is not None else "Background workers are not supported"

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def available(self) -> bool:
        return self._state is not ChannelState.UNAVAILABLE

    async def init(self) -> bool:
        """Start the worker if needed and return whether it is ready.

        Concurrent callers share one in-flight attempt. Once ready, or once
        permanently unavailable, this returns the cached answer immediately.
        """
        if self._state is ChannelState.READY:
            return True
        if self._state is ChannelState.UNAVAILABLE:
            return False
        if self._init_task is None or self._init_task.done():
            self._init_task = asyncio.ensure_future(self._initialize())
        return await asyncio.shield(self._init_task)

    async def request(self, message_type: str, data: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request to the ready worker and wait for its correlated reply.

        Raises:
            ChannelUnavailableError: The worker is not ready.
            ChannelTimeoutError: No reply arrived within `timeout` seconds.
            ChannelError: The worker or its transport failed while pending.
            InferenceFailure: The worker answered with an error.
        """
        if self._state is not ChannelState.READY:
            raise ChannelUnavailableError(f"Worker is not ready (state={self._state.value})")
        return await self._send(message_type, data, timeout or self.config.request_timeout)

    async def close(self) -> None:
        """Terminate the worker and reject anything still pending."""
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._discard_transport(ChannelUnavailableError("Channel closed"))
        self._state = ChannelState.UNAVAILABLE
        self.last_error = "closed"
        await self.wait_terminated()

    async def wait_terminated(self) -> None:
        """Wait for every worker shutdown started so far to finish."""
        while self._terminations:
            await asyncio.gather(*list(self._terminations))

    async def _initialize(self) -> bool:
        if self._attempts >= self.config.max_init_attempts:
            self._mark_failed("Maximum worker initialization attempts reached")
            return False

        self._attempts += 1
        logger.info("Worker initialization attempt %s/%s", self._attempts, self.config.max_init_attempts)
        try:
            self._spawn()
            success = bool(await self._send("init", None, self.config.init_timeout))
            reason = "worker reported initialization failure"
        except ChannelTimeoutError as exc:
            logger.warning("Worker initialization timed out on attempt %s", self._attempts)
            success, reason = False, str(exc)
        except Exception as exc:
            logger.error("Worker initialization failed: %s", exc)
            success, reason = False, str(exc)

        if success:
            self._state = ChannelState.READY
            self.last_error = None
            return True

        self._discard_transport(ChannelError("Worker initialization failed"))
        self._mark_failed(reason)
        return False

    def _mark_failed(self, reason: str) -> None:
        self.last_error = reason
        if self._attempts >= self.config.max_init_attempts:
            if self._state is not ChannelState.UNAVAILABLE:
                logger.warning(
                    "Worker unavailable after %s attempts; inference will use degraded tiers",
                    self._attempts,
                )
            self._state = ChannelState.UNAVAILABLE
        else:
            self._state = ChannelState.NEEDS_REINIT

    def _spawn(self) -> None:
        assert self._factory is not None
        self._discard_transport(ChannelError("Worker terminated during restart"))
        self._generation += 1
        generation = self._generation
        transport = self._factory()
        transport.start(
            lambda message: self._on_message(generation, message),
            lambda exc: self._on_transport_error(generation, exc),
        )
        self._transport = transport

    def _discard_transport(self, exc: BaseException) -> None:
        transport, self._transport = self._transport, None
        rejected = self._pending.reject_all(exc)
        if rejected:
            logger.warning("Rejected %s pending worker request(s): %s", rejected, exc)
        if transport is None:
            return
        # Shutdown joins the worker process; keep it off the event loop thread.
        future = asyncio.get_running_loop().run_in_executor(None, _terminate_quietly, transport)
        self._terminations.add(future)
        future.add_done_callback(self._terminations.discard)

    async def _send(self, message_type: str, data: Any, timeout: float) -> Any:
        transport = self._transport
        if transport is None:
            raise ChannelUnavailableError("Worker not initialized")

        loop = asyncio.get_running_loop()
        request = ChannelRequest(id=next(self._ids), type=message_type, payload=data)
        future = loop.create_future()
        entry = PendingEntry(request=request, future=future)
        entry.timer = loop.call_later(timeout, self._expire, request.id, timeout)
        self._pending.insert(entry)
        future.add_done_callback(lambda f, request_id=request.id: self._on_future_done(request_id, f))

        try:
            transport.post(request.to_message())
        except Exception as exc:
            self._pending.reject(request.id, ChannelError(f"Failed to send message to worker: {exc}"))
        return await future

    def _expire(self, request_id: int, timeout: float) -> None:
        if self._pending.reject(request_id, ChannelTimeoutError(f"Worker response timed out after {timeout:g}s")):
            logger.warning("Worker request %s timed out after %gs", request_id, timeout)

    def _on_future_done(self, request_id: int, future: asyncio.Future) -> None:
        if future.cancelled() and self._pending.discard(request_id):
            logger.info("Abandoned worker request %s", request_id)

    def _on_message(self, generation: int, message: Dict[str, Any]) -> None:
        if generation != self._generation:
            logger.debug("Dropping message from replaced worker: %r", message.get("id"))
            return
        request_id = message.get("id")
        entry = self._pending.lookup(request_id) if isinstance(request_id, int) else None
        if entry is None:
            logger.debug("Dropping unmatched worker message id=%r", request_id)
            return

        error = message.get("error")
        if error:
            exc_type = InferenceFailure if entry.request.type == "predict" else ChannelError
            self._pending.reject(request_id, exc_type(str(error)))
        elif message.get("type") == "init":
            self._pending.resolve(request_id, bool(message.get("success")))
        else:
            self._pending.resolve(request_id, message.get("result"))

    def _on_transport_error(self, generation: int, exc: BaseException) -> None:
        if generation != self._generation:
            return
        logger.error("Worker error: %s", exc)
        self._discard_transport(ChannelError(f"Worker error: {exc}"))
        self._mark_failed(str(exc))


def _terminate_quietly(transport: WorkerTransport) -> None:
    try:
        transport.terminate()
    except Exception as exc:
        logger.error("Error terminating worker: %s", exc)
