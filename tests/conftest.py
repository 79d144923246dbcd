import asyncio
import io
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pytest
from PIL import Image

from models.pixel_buffer import DecodedPixelBuffer, RawImage

LEAF_GREEN = (40, 160, 40)


def encode_image(width: int, height: int, color: Tuple[int, int, int] = LEAF_GREEN, fmt: str = "PNG") -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format=fmt)
    return out.getvalue()


def encode_noise(width: int, height: int, seed: int = 0) -> bytes:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(60, 200, size=(height, width, 3), dtype=np.uint8)
    out = io.BytesIO()
    Image.fromarray(pixels).save(out, format="PNG")
    return out.getvalue()


class FakeTransport:
    """In-process stand-in for a worker transport, driven by the test."""

    def __init__(self, auto_init: bool = True, init_success: bool = True, predict_result: Optional[Dict[str, Any]] = None):
        self.auto_init = auto_init
        self.init_success = init_success
        self.predict_result = predict_result
        self.posted: List[Dict[str, Any]] = []
        self.on_message: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_error: Optional[Callable[[BaseException], None]] = None
        self.terminated = False

    def start(self, on_message, on_error) -> None:
        self.on_message = on_message
        self.on_error = on_error

    def post(self, message: Dict[str, Any]) -> None:
        self.posted.append(message)
        loop = asyncio.get_running_loop()
        if message["type"] == "init" and self.auto_init:
            loop.call_soon(self.on_message, {"id": message["id"], "type": "init", "success": self.init_success})
        elif message["type"] == "predict" and self.predict_result is not None:
            loop.call_soon(self.on_message, {"id": message["id"], "type": "predict", "result": self.predict_result})

    def reply(self, request_id: int, result: Any) -> None:
        self.on_message({"id": request_id, "type": "predict", "result": result})

    def fail(self, exc: BaseException) -> None:
        self.on_error(exc)

    def terminate(self) -> None:
        self.terminated = True

    def ids(self, message_type: str = "predict") -> List[int]:
        return [m["id"] for m in self.posted if m["type"] == message_type]


class TransportFactory:
    """Callable factory that records every transport it builds."""

    def __init__(self, **options: Any) -> None:
        self.options = options
        self.built: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(**self.options)
        self.built.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.built[-1]


@pytest.fixture
def transport_factory():
    return TransportFactory


@pytest.fixture
def leaf_buffer() -> DecodedPixelBuffer:
    return DecodedPixelBuffer.filled(64, 64, LEAF_GREEN + (255,))


@pytest.fixture
def leaf_upload() -> RawImage:
    return RawImage(data=encode_image(64, 64), mime_type="image/png", filename="leaf.png")
