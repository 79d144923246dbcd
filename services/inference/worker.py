"""Entry point and message handling for the background model worker.

The worker runs in its own process. It loads the disease model lazily on
the first `init` (or `predict`) message and answers every request with a
reply carrying the same `id`:

    {"id": 3, "type": "init", "success": true, "error": null}
    {"id": 4, "type": "predict", "result": {"diseaseId": "...", "confidence": 87}}
    {"id": 5, "type": "predict", "error": "..."}
    {"id": 6, "type": "error", "error": "Unknown command"}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from models.pixel_buffer import DecodedPixelBuffer
from services.inference.model_loader import DiseaseModel, load_model

logger = logging.getLogger(__name__)


class WorkerRuntime:
    """Model holder plus request dispatch, independent of the queue plumbing."""

    def __init__(self, model_factory: str) -> None:
        self.model_factory = model_factory
        self.model: Optional[DiseaseModel] = None
        self.load_error: Optional[str] = None

    def init_model(self) -> bool:
        if self.model is not None:
            return True
        if self.load_error is not None:
            return False
        try:
            logger.info("Worker: loading model from %s", self.model_factory)
            self.model = load_model(self.model_factory)
        except Exception as exc:
            logger.error("Worker: error initializing model: %s", exc)
            self.load_error = str(exc) or exc.__class__.__name__
            return False
        return True

    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        message_type = message.get("type")
        request_id = message.get("id")

        if message_type == "init":
            success = self.init_model()
            return {
                "id": request_id,
                "type": "init",
                "success": success,
                "error": None if success else f"Model initialization failed: {self.load_error}",
            }

        if message_type == "predict":
            try:
                return {"id": request_id, "type": "predict", "result": self._predict(message.get("data"))}
            except Exception as exc:
                logger.error("Worker prediction error: %s", exc)
                return {"id": request_id, "type": "predict", "error": str(exc) or "Unknown prediction error"}

        return {"id": request_id, "type": "error", "error": "Unknown command"}

    def _predict(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict) or not data.get("data") or not data.get("width") or not data.get("height"):
            raise ValueError("Invalid image data provided")
        if not self.init_model():
            raise RuntimeError(f"Model initialization failed: {self.load_error}")
        buffer = DecodedPixelBuffer.from_message(data)
        try:
            return self.model.predict(buffer).to_dict()
        finally:
            buffer.release()


def run_worker(inbox, outbox, model_factory: str) -> None:
    """Process main loop: read requests until a shutdown message arrives."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [worker] %(message)s")
    runtime = WorkerRuntime(model_factory)
    while True:
        message = inbox.get()
        if not isinstance(message, dict) or message.get("type") == "shutdown":
            break
        outbox.put(runtime.handle(message))
