"""
QR status polling and status-code normalization.

BNB reports QR state either as a numeric code or as a string token depending
on the deployment, so the raw value is parsed as a number first and falls
back to the string vocabulary.
"""
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import structlog

from qr_checkout.core.models import STATUS_ERROR, STATUS_EXPIRED, STATUS_PAID, STATUS_PENDING
from qr_checkout.integrations.bnb_client import BNBQRClient
from qr_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

NUMERIC_STATUSES = {2: STATUS_PAID, 3: STATUS_EXPIRED, 4: STATUS_ERROR}
STRING_STATUSES = {
    "USED": STATUS_PAID,
    "PAID": STATUS_PAID,
    "EXPIRED": STATUS_EXPIRED,
    "ERROR": STATUS_ERROR,
}

# Checked in order; the first present key carries the status
STATUS_FIELDS = ("statusId", "qrStatus", "status")


def _as_number(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    try:
        return float(str(raw).strip())
    except ValueError:
        return None


def normalize_status(raw: Any) -> Tuple[str, bool]:
    """
    Map a raw BNB status indicator to ``(status, is_paid)``.

    Numbers: 2 paid, 3 expired, 4 error, anything else pending.
    Strings (case-insensitive): USED/PAID paid, EXPIRED expired, ERROR error,
    anything else pending.
    """
    number = _as_number(raw)
    if number is not None:
        status = STATUS_PENDING
        if not math.isnan(number) and number.is_integer():
            status = NUMERIC_STATUSES.get(int(number), STATUS_PENDING)
    else:
        token = str(raw or "").strip().upper()
        status = STRING_STATUSES.get(token, STATUS_PENDING)
    return status, status == STATUS_PAID


def extract_status_code(data: Dict[str, Any]) -> Any:
    for field in STATUS_FIELDS:
        if data.get(field) is not None:
            return data[field]
    return None


@dataclass
class PollResult:
    """
    Outcome of one status check.

    ``conclusive`` is False when the provider could not be asked or answered
    with an error; such results always read as pending and not paid.
    """

    qr_id: str
    status: str = STATUS_PENDING
    is_paid: bool = False
    conclusive: bool = True
    reason: Optional[str] = None
    provider_status_code: Any = None
    provider_qr_id: Any = None
    voucher_id: Any = None
    expiration_date: Optional[str] = None

    @classmethod
    def inconclusive(cls, qr_id: str, reason: str) -> "PollResult":
        return cls(qr_id=qr_id, conclusive=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, **asdict(self)}


class StatusPoller:
    """Queries BNB for QR status without ever raising to the caller."""

    def __init__(self, bnb_client: BNBQRClient):
        self.bnb_client = bnb_client

    async def check_status(self, qr_id: str) -> PollResult:
        """
        Ask BNB for the current status of ``qr_id``.

        Any failure (auth, network, provider business error, bad payload) is
        logged and reported as an inconclusive pending result.
        """
        qr_id = str(qr_id)
        try:
            data = await self.bnb_client.get_qr_status(qr_id)
        except Exception as e:
            logger.warning(
                "qr_status_check_inconclusive",
                qr_id=qr_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = PollResult.inconclusive(qr_id, reason=str(e))
            metrics.record_status_check(result.status, conclusive=False)
            return result

        raw = extract_status_code(data)
        status, is_paid = normalize_status(raw)

        result = PollResult(
            qr_id=qr_id,
            status=status,
            is_paid=is_paid,
            provider_status_code=raw,
            provider_qr_id=data.get("id"),
            voucher_id=data.get("voucherId"),
            expiration_date=data.get("expirationDate"),
        )
        metrics.record_status_check(status, conclusive=True)
        logger.info(
            "qr_status_checked",
            qr_id=qr_id,
            provider_status_code=raw,
            status=status,
            is_paid=is_paid,
        )
        return result
