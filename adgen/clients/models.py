"""
Model Detail Client

GET /models/{id}/full-detail, used only as the last resolver tier.
"""

from typing import Any, Dict, List

from adgen.core.exceptions import ModelDetailError
from adgen.core.http import BackendClient
from adgen.core.logging import get_logger

logger = get_logger(__name__)


def model_detail_path(model_id: str) -> str:
    return f"/models/{model_id}/full-detail"


class ModelDetailClient:

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def get_model_files(self, model_id: str) -> List[Dict[str, Any]]:
        """Return the file entries attached to a model (possibly empty)."""
        data = await self.backend.get(model_detail_path(model_id), error_cls=ModelDetailError)

        if isinstance(data, list):
            files = data
        elif isinstance(data, dict):
            files = data.get("files") or []
        else:
            files = []

        logger.info("model_files_fetched", model_id=model_id, file_count=len(files))
        return [f for f in files if isinstance(f, dict)]
