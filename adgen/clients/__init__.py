"""
Backend API Clients

Thin typed wrappers over the marketplace backend:
points ledger, file upload, generation jobs and model details.
"""

from adgen.clients.files import AssetUploadClient
from adgen.clients.jobs import JobSubmitter
from adgen.clients.models import ModelDetailClient
from adgen.clients.points import PointLedgerClient

__all__ = ["AssetUploadClient", "JobSubmitter", "ModelDetailClient", "PointLedgerClient"]
