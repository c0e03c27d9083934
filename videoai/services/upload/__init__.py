"""Upload transport module.

Moves an acquired video into object storage through a one-time write URL.

Example usage:
    from videoai.services.upload import UploadTransport

    target = await transport.negotiate_upload_target(owner_id, asset.filename)
    record = await transport.create_record(owner_id, asset, target.canonical_path)
    result = await transport.transfer(asset, target.write_url, on_progress=print)
    await transport.finalize(record.id, result.success)
"""

from .base import (
    DestinationCategory,
    ProgressCallback,
    TransferResult,
    UploadProgress,
    UploadResult,
    UploadTarget,
)
from .transport import UploadTransport


__all__ = [
    "DestinationCategory",
    "ProgressCallback",
    "TransferResult",
    "UploadProgress",
    "UploadResult",
    "UploadTarget",
    "UploadTransport",
]
