"""Pydantic schemas for API request/response."""
from voicecap.schemas.capture import CaptureHistoryItem, CaptureRequest, CaptureResponse

__all__ = [
    "CaptureHistoryItem",
    "CaptureRequest",
    "CaptureResponse",
]
