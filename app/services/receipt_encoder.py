"""
Receipt encoding for QR payloads.

``encode`` is pure: the same payload always yields the same URI. Rendering the
URI into a QR image is left to the client.
"""
from abc import ABC, abstractmethod
from typing import Optional
import base64
import json

from app.core.logging import get_logger

logger = get_logger(__name__)


class ReceiptEncoder(ABC):
    @abstractmethod
    def encode(self, payload: dict) -> str:
        """Return a data URI for ``payload``."""


class DataUriReceiptEncoder(ReceiptEncoder):
    media_type = "application/json"

    def encode(self, payload: dict) -> str:
        body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        encoded = base64.b64encode(body.encode("utf-8")).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


def encode_safely(encoder: Optional[ReceiptEncoder], payload: dict) -> Optional[str]:
    """Encode ``payload``, logging and returning None if the encoder fails."""
    if encoder is None:
        return None
    try:
        return encoder.encode(payload)
    except Exception:
        logger.error("Receipt encoding failed", exc_info=True)
        return None


def get_receipt_encoder() -> ReceiptEncoder:
    return DataUriReceiptEncoder()
