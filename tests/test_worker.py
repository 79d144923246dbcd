import queue
import threading

import pytest

from models.pixel_buffer import DecodedPixelBuffer
from services.inference.channel import BackgroundChannel, ChannelState
from services.inference.transport import ProcessTransport, process_workers_supported
from services.inference.worker import WorkerRuntime, run_worker
from utils.settings import ChannelConfig

COLOR_MODEL = "services.inference.classical:load_color_model"


def _leaf_message():
    return DecodedPixelBuffer.filled(32, 32, (40, 160, 40, 255)).to_message()


def test_init_then_predict():
    runtime = WorkerRuntime(COLOR_MODEL)
    assert runtime.handle({"id": 1, "type": "init"}) == {"id": 1, "type": "init", "success": True, "error": None}

    reply = runtime.handle({"id": 2, "type": "predict", "data": _leaf_message()})
    assert reply["id"] == 2
    assert reply["result"]["diseaseId"] == "healthy"
    assert 55 <= reply["result"]["confidence"] <= 80


def test_predict_without_pixels_is_an_error_reply():
    reply = WorkerRuntime(COLOR_MODEL).handle({"id": 3, "type": "predict", "data": {"width": 0}})
    assert reply == {"id": 3, "type": "predict", "error": "Invalid image data provided"}


def test_unknown_command():
    reply = WorkerRuntime(COLOR_MODEL).handle({"id": 4, "type": "train"})
    assert reply == {"id": 4, "type": "error", "error": "Unknown command"}


def test_failed_model_load_is_reported_and_remembered():
    runtime = WorkerRuntime("services.inference.does_not_exist:load")
    first = runtime.handle({"id": 5, "type": "init"})
    assert first["success"] is False
    assert first["error"].startswith("Model initialization failed")

    reply = runtime.handle({"id": 6, "type": "predict", "data": _leaf_message()})
    assert "Model initialization failed" in reply["error"]


def test_run_worker_stops_on_shutdown():
    inbox, outbox = queue.Queue(), queue.Queue()
    for message in ({"id": 1, "type": "init"}, {"id": 2, "type": "predict", "data": _leaf_message()}, {"type": "shutdown"}):
        inbox.put(message)

    run_worker(inbox, outbox, COLOR_MODEL)

    replies = [outbox.get_nowait() for _ in range(outbox.qsize())]
    assert [r["id"] for r in replies] == [1, 2]


@pytest.mark.skipif(not process_workers_supported(), reason="spawned worker processes unavailable")
async def test_process_transport_end_to_end():
    channel = BackgroundChannel(lambda: ProcessTransport(COLOR_MODEL), ChannelConfig(init_timeout=60, request_timeout=30))
    try:
        assert await channel.init()
        assert channel.state is ChannelState.READY
        result = await channel.request("predict", _leaf_message())
        assert result["diseaseId"] == "healthy"
    finally:
        await channel.close()


@pytest.mark.skipif(not process_workers_supported(), reason="spawned worker processes unavailable")
async def test_close_stops_reader_thread():
    built = []

    def factory():
        built.append(ProcessTransport(COLOR_MODEL, poll_interval=0.05))
        return built[-1]

    channel = BackgroundChannel(factory, ChannelConfig(init_timeout=60, request_timeout=30))
    assert await channel.init()
    await channel.close()
    assert not built[0]._reader.is_alive()
    assert not built[0]._process.is_alive()


class ExitedProcess:
    pid = 4242
    exitcode = 0

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return False


class PollingQueue:
    def __init__(self):
        self.items = queue.Queue()
        self.closed = False

    def put(self, item):
        self.items.put(item)

    def get(self, timeout=None):
        return self.items.get(timeout=timeout)

    def close(self):
        self.closed = True

    def cancel_join_thread(self):
        pass


def test_terminate_joins_reader_before_closing_queues():
    transport = ProcessTransport(COLOR_MODEL, poll_interval=0.05, shutdown_timeout=1.0)
    transport._process = ExitedProcess()
    transport._inbox = PollingQueue()
    transport._outbox = PollingQueue()
    closed_while_reading = []

    def read_loop():
        while not transport._stopping.is_set():
            closed_while_reading.append(transport._outbox.closed)
            try:
                transport._outbox.get(timeout=transport.poll_interval)
            except queue.Empty:
                continue

    transport._reader = threading.Thread(target=read_loop, daemon=True)
    transport._reader.start()

    transport.terminate()

    assert not transport._reader.is_alive()
    assert transport._outbox.closed
    assert not any(closed_while_reading)
