"""Application layer."""

from object_client.application.client import ObjectClient, UploadResult

__all__ = [
    "ObjectClient",
    "UploadResult",
]
