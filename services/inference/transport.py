"""Child-process transport for the background inference worker."""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import queue
import threading
from typing import Any, Callable, Dict, Optional

from services.errors import ChannelError
from services.inference.worker import run_worker

logger = logging.getLogger(__name__)


def process_workers_supported() -> bool:
    """Return True when this platform can start spawn-mode worker processes."""
    try:
        ctx = multiprocessing.get_context("spawn")
        ctx.Queue().close()
    except (ImportError, OSError, ValueError) as exc:
        logger.warning("Background worker processes unavailable: %s", exc)
        return False
    return True


class ProcessTransport:
    """Run the model worker in a spawned process and talk to it over queues.

    Nothing is shared with the child except pickled messages. A reader
    thread forwards replies to the event loop with `call_soon_threadsafe`
    and reports an unexpected child exit as a transport error.
    """

    def __init__(self, model_factory: str, poll_interval: float = 0.2, shutdown_timeout: float = 2.0) -> None:
        self.model_factory = model_factory
        self.poll_interval = poll_interval
        self.shutdown_timeout = shutdown_timeout
        self._ctx = multiprocessing.get_context("spawn")
        self._process = None
        self._inbox = None
        self._outbox = None
        self._reader: Optional[threading.Thread] = None
        self._stopping = threading.Event()

    def start(
        self,
        on_message: Callable[[Dict[str, Any]], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        if self._process is not None:
            raise ChannelError("Transport already started")
        loop = asyncio.get_running_loop()
        self._inbox = self._ctx.Queue()
        self._outbox = self._ctx.Queue()
        self._process = self._ctx.Process(
            target=run_worker,
            args=(self._inbox, self._outbox, self.model_factory),
            name="plant-model-worker",
            daemon=True,
        )
        self._process.start()
        logger.info("Started model worker process pid=%s", self._process.pid)
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(loop, on_message, on_error),
            name="plant-model-worker-reader",
            daemon=True,
        )
        self._reader.start()

    def post(self, message: Dict[str, Any]) -> None:
        if self._inbox is None or self._stopping.is_set():
            raise ChannelError("Worker transport is not running")
        self._inbox.put(message)

    def terminate(self) -> None:
        if self._process is None or self._stopping.is_set():
            return
        self._stopping.set()
        try:
            self._inbox.put({"type": "shutdown"})
        except (OSError, ValueError) as exc:
            logger.debug("Could not send shutdown to worker: %s", exc)
        self._process.join(self.shutdown_timeout)
        if self._process.is_alive():
            logger.warning("Worker pid=%s did not exit; terminating", self._process.pid)
            self._process.terminate()
            self._process.join(self.shutdown_timeout)
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(self.shutdown_timeout)
            if reader.is_alive():
                logger.warning("Worker reader thread did not stop within %gs", self.shutdown_timeout)
        for q in (self._inbox, self._outbox):
            q.close()
            q.cancel_join_thread()

    def _read_loop(
        self,
        loop: asyncio.AbstractEventLoop,
        on_message: Callable[[Dict[str, Any]], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        while not self._stopping.is_set():
            try:
                message = self._outbox.get(timeout=self.poll_interval)
            except queue.Empty:
                if not self._process.is_alive() and not self._stopping.is_set():
                    exit_code = self._process.exitcode
                    self._deliver(loop, on_error, ChannelError(f"Worker process exited with code {exit_code}"))
                    return
                continue
            except (EOFError, OSError, ValueError) as exc:
                if not self._stopping.is_set():
                    self._deliver(loop, on_error, ChannelError(f"Worker pipe failed: {exc}"))
                return
            self._deliver(loop, on_message, message)

    @staticmethod
    def _deliver(loop: asyncio.AbstractEventLoop, callback: Callable[[Any], None], arg: Any) -> None:
        try:
            loop.call_soon_threadsafe(callback, arg)
        except RuntimeError:
            logger.debug("Event loop closed; dropping worker event")
