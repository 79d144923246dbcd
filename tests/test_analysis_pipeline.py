import asyncio
import threading
import time

import pytest

from models.classification import ClassificationResult, ClassifierTier
from models.pixel_buffer import DecodedPixelBuffer, RawImage
from services.analysis_pipeline import (
    EXHAUSTED_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    TIMEOUT_MESSAGE,
    DiagnosisPipeline,
    describe_failure,
)
from services.errors import ChannelTimeoutError, ImageValidationError, InferenceExhaustedError, InferenceFailure
from services.image_store import ImageStore
from services.image_validator import ImageValidator
from services.inference.orchestrator import InferenceOrchestrator
from services.inference.strategies import ClassicalClassifier, NullClassifier
from services.result_store import ResultStore
from utils.database_init import AsyncDatabaseInitializer

from conftest import encode_image


class FixedStrategy:
    tier = ClassifierTier.CLASSICAL

    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = 0

    async def classify(self, buffer, resources):
        self.calls += 1
        assert (buffer.width, buffer.height) == (224, 224)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


@pytest.fixture
def store(tmp_path):
    return ResultStore(AsyncDatabaseInitializer(tmp_path / "db"), ImageStore(tmp_path / "images"))


def _pipeline(store, *strategies):
    return DiagnosisPipeline(ImageValidator(), InferenceOrchestrator(list(strategies)), store)


async def test_confident_diagnosis_is_stored_with_blob_url(store, leaf_upload):
    pipeline = _pipeline(store, ClassicalClassifier(), NullClassifier())
    record = await pipeline.analyze(leaf_upload)

    assert record.is_healthy
    assert record.image_url.startswith("/images/")
    assert [r.id for r in await store.list_recent()] == [record.id]


async def test_low_confidence_diagnosis_gets_preview_and_is_not_kept(store, leaf_upload):
    record = await _pipeline(store, FixedStrategy(ClassificationResult("early_blight", 60))).analyze(leaf_upload)

    assert record.disease_name == "Early Blight"
    assert record.image_url.startswith("data:image/png;base64,")
    assert await store.list_recent() == []


async def test_offline_store_still_returns_diagnosis(leaf_upload):
    offline = ResultStore(None)
    record = await _pipeline(offline, FixedStrategy(ClassificationResult("late_blight", 90))).analyze(leaf_upload)
    assert record.confidence_score == 90
    assert record.image_url.startswith("data:image/png;base64,")


async def test_validation_failure_stops_before_inference(store):
    strategy = FixedStrategy(ClassificationResult("healthy", 90))
    dark = RawImage(encode_image(50, 50, (5, 5, 5)), "image/png", "night.png")
    with pytest.raises(ImageValidationError) as excinfo:
        await _pipeline(store, strategy).analyze(dark)
    assert strategy.calls == 0
    assert "too dark" in describe_failure(excinfo.value)


async def test_exhaustion_surfaces_retry_prompt(store, leaf_upload):
    with pytest.raises(InferenceExhaustedError) as excinfo:
        await _pipeline(store, FixedStrategy(InferenceFailure("broken"))).analyze(leaf_upload)
    assert describe_failure(excinfo.value) == EXHAUSTED_MESSAGE


def test_failure_messages():
    assert describe_failure(ChannelTimeoutError("late")) == TIMEOUT_MESSAGE
    assert describe_failure(RuntimeError("x")) == GENERIC_FAILURE_MESSAGE


class ThreadRecordingValidator(ImageValidator):
    def __init__(self):
        super().__init__()
        self.pixel_check_threads = []

    def validate_pixels(self, buffer):
        self.pixel_check_threads.append(threading.get_ident())
        return super().validate_pixels(buffer)


async def test_decode_and_pixel_checks_run_off_the_event_loop(store, leaf_upload, monkeypatch):
    decode_calls = []
    original_decode = DecodedPixelBuffer.decode

    def counting_decode(data):
        decode_calls.append(threading.get_ident())
        return original_decode(data)

    monkeypatch.setattr(DecodedPixelBuffer, "decode", staticmethod(counting_decode))
    validator = ThreadRecordingValidator()
    orchestrator = InferenceOrchestrator([FixedStrategy(ClassificationResult("healthy", 90))])
    loop_thread = threading.get_ident()

    await DiagnosisPipeline(validator, orchestrator, store).analyze(leaf_upload)

    assert len(decode_calls) == 1
    assert decode_calls[0] != loop_thread
    assert validator.pixel_check_threads and loop_thread not in validator.pixel_check_threads


async def test_event_loop_keeps_ticking_during_validation(store):
    raw = RawImage(encode_image(2000, 2000, fmt="JPEG"), "image/jpeg", "big.jpg")
    pipeline = _pipeline(store, FixedStrategy(ClassificationResult("healthy", 60)))
    gaps = []
    done = asyncio.Event()

    async def ticker():
        last = time.monotonic()
        while not done.is_set():
            await asyncio.sleep(0.005)
            now = time.monotonic()
            gaps.append(now - last)
            last = now

    ticking = asyncio.ensure_future(ticker())
    try:
        await pipeline.analyze(raw)
    finally:
        done.set()
        await ticking
    assert max(gaps) < 0.2
