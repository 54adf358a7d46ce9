"""
Model Asset Resolver

Finds the backend file id of the selected model. Tiers are tried in a
fixed order and the first one that yields an id wins:

1. seed value that parses as an integer (the seed field carries the file id
   for purchased and generated models)
2. explicit fileId on the model
3. remote detail lookup, first file entry

The first two tiers never touch the network.
"""

import re
from typing import List, Optional, Sequence

from adgen.clients.models import ModelDetailClient
from adgen.core.exceptions import ModelAssetNotFoundError
from adgen.core.logging import get_logger
from adgen.modules.generation.models import SelectedModel

logger = get_logger(__name__)


LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_int(value) -> Optional[int]:
    """
    Leading-integer parse: "12abc" is 12, "seed-1" has no leading digits.

    Booleans are never integers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = LEADING_INT.match(str(value))
    if match is None:
        return None
    return int(match.group(1))


class ResolverStrategy:
    """One resolver tier. Returns None to hand over to the next tier."""

    name = "base"

    async def resolve(self, model: SelectedModel) -> Optional[int]:
        raise NotImplementedError


class SeedValueStrategy(ResolverStrategy):
    name = "seed_value"

    async def resolve(self, model: SelectedModel) -> Optional[int]:
        return parse_int(model.seed_value)


class ExplicitFileIdStrategy(ResolverStrategy):
    name = "file_id"

    async def resolve(self, model: SelectedModel) -> Optional[int]:
        return model.file_id


class RemoteDetailStrategy(ResolverStrategy):
    name = "remote_detail"

    def __init__(self, detail_client: ModelDetailClient):
        self.detail_client = detail_client

    async def resolve(self, model: SelectedModel) -> Optional[int]:
        files = await self.detail_client.get_model_files(model.id)
        if not files:
            raise ModelAssetNotFoundError(model.id)

        first = files[0]
        raw_id = first.get("fileId")
        if raw_id is None:
            raw_id = first.get("id")
        file_id = parse_int(raw_id)
        if file_id is None:
            raise ModelAssetNotFoundError(model.id)
        return file_id


class ModelAssetResolver:

    def __init__(self, strategies: Sequence[ResolverStrategy]):
        self.strategies: List[ResolverStrategy] = list(strategies)

    @classmethod
    def default(cls, detail_client: ModelDetailClient) -> "ModelAssetResolver":
        return cls([
            SeedValueStrategy(),
            ExplicitFileIdStrategy(),
            RemoteDetailStrategy(detail_client),
        ])

    async def resolve(self, model: SelectedModel) -> int:
        for strategy in self.strategies:
            file_id = await strategy.resolve(model)
            if file_id is not None:
                logger.info(
                    "model_asset_resolved",
                    model_id=model.id,
                    tier=strategy.name,
                    file_id=file_id
                )
                return file_id

        raise ModelAssetNotFoundError(model.id)
