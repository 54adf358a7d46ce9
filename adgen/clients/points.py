"""
Point Ledger Client

Check-then-deduct contract against the server-owned point balance.
Deductions are final: there is no refund call.
"""

from typing import Optional

from adgen.core.config import settings
from adgen.core.exceptions import InsufficientPointsError, LedgerError
from adgen.core.http import BackendClient
from adgen.core.logging import get_logger
from adgen.core.metrics import points_deducted_total
from adgen.modules.generation.models import PointBalance, PointCheck, PointUseResult

logger = get_logger(__name__)

BALANCE_PATH = "/points/balance"
USE_PATH = "/points/use"


def _is_insufficient(exc: LedgerError) -> bool:
    if exc.http_status == 402:
        return True
    error_code = str(exc.details.get("error_code") or "")
    return "INSUFFICIENT" in error_code.upper()


class PointLedgerClient:
    """Reads the balance and deducts points through the backend."""

    def __init__(self, backend: BackendClient, referer_type: Optional[str] = None):
        self.backend = backend
        self.referer_type = referer_type or settings.POINT_REFERER_TYPE

    async def get_balance(self) -> PointBalance:
        data = await self.backend.get(BALANCE_PATH, error_cls=LedgerError)
        if not isinstance(data, dict):
            raise LedgerError("Point balance response is not an object")
        return PointBalance.model_validate(data)

    async def check_sufficient(self, amount: int) -> PointCheck:
        """Compare the available balance against `amount` (not cached)."""
        balance = await self.get_balance()
        check = PointCheck(
            sufficient=balance.available_points >= amount,
            current_balance=balance.available_points
        )
        logger.info(
            "points_checked",
            required=amount,
            balance=check.current_balance,
            sufficient=check.sufficient
        )
        return check

    async def deduct(
        self,
        amount: int,
        reference_id: str,
        idempotency_key: Optional[str] = None
    ) -> PointUseResult:
        """
        Deduct `amount` points for `reference_id` (the model id).

        Raises:
            InsufficientPointsError: the backend refused for lack of points
            LedgerError: any other failure
        """
        payload = {
            "amount": amount,
            "refererId": int(reference_id) if str(reference_id).isdigit() else reference_id,
            "refererType": self.referer_type,
        }
        if idempotency_key:
            payload["idempotencyKey"] = idempotency_key

        try:
            data = await self.backend.post(USE_PATH, json=payload, error_cls=LedgerError)
        except LedgerError as e:
            if _is_insufficient(e):
                raise InsufficientPointsError(required=amount, message=e.message)
            raise

        try:
            result = PointUseResult.model_validate(data)
        except ValueError as e:
            raise LedgerError(f"Unexpected point deduction response: {e}")

        points_deducted_total.inc(amount)
        logger.info(
            "points_deducted",
            amount=amount,
            reference_id=reference_id,
            remaining_points=result.remaining_points
        )
        return result
