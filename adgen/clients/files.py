"""
Asset Upload Client

POST /files (multipart) -> {fileId}. No retries: a failed upload ends the run.
"""

from typing import Optional

from adgen.core.config import settings
from adgen.core.exceptions import UploadError
from adgen.core.http import BackendClient
from adgen.core.logging import get_logger
from adgen.modules.generation.models import ProductImage

logger = get_logger(__name__)

UPLOAD_PATH = "/files"


def _as_file_id(value) -> Optional[int]:
    """Whole-number id only; booleans and fractional floats are rejected."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class AssetUploadClient:

    def __init__(self, backend: BackendClient, timeout: Optional[float] = None):
        self.backend = backend
        self.timeout = timeout or settings.UPLOAD_TIMEOUT_SECONDS

    async def upload(self, image: ProductImage) -> int:
        """Upload the image and return the backend file id."""
        logger.info("upload_starting", filename=image.filename, input_size=len(image.data))

        data = await self.backend.post(
            UPLOAD_PATH,
            files={"file": (image.filename, image.data, image.content_type)},
            timeout=self.timeout,
            error_cls=UploadError
        )

        raw_id = data.get("fileId") if isinstance(data, dict) else None
        file_id = _as_file_id(raw_id)
        if file_id is None:
            raise UploadError(f"Upload response did not include a usable fileId: {raw_id!r}")

        logger.info("upload_completed", file_id=file_id)
        return file_id
