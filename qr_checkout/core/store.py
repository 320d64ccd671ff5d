"""
JSON file payment store.

The whole store is one JSON object mapping payment id to record. Every
operation reads the file in full and every mutation rewrites it in full
through a temporary file and an atomic rename, so the file on disk is always
either absent or complete.

An absent file is an empty store. A file that cannot be read or parsed
raises StorageError: a corrupted store is never silently treated as empty.
"""
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from qr_checkout.core.models import (
    STATUS_PAID,
    STATUS_PENDING,
    PaymentRecord,
    utc_timestamp,
)

logger = structlog.get_logger(__name__)

_STATUS_FIELDS = ("provider_status_code", "provider_qr_id", "voucher_id")
_NOTIFY_FIELDS = ("webhook_notified", "webhook_notified_at")


def transition_allowed(current: str, observed: str) -> bool:
    """Status only leaves pending, except that paid always wins."""
    return observed == current or current == STATUS_PENDING or observed == STATUS_PAID


class StorageError(Exception):
    """Raised when the store file cannot be read or written."""

    pass


class PaymentStore:
    """
    Record-granular access to the JSON payment file.

    Read-modify-write cycles are serialized with a process-local lock; there is
    no protection against a second process writing the same file.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return self.path.exists()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("payment_store_read_failed", path=str(self.path), error=str(e))
            raise StorageError(f"Cannot read payment store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Payment store {self.path} does not hold a JSON object")
        return data

    def _dump(self, payments: Dict[str, Dict[str, Any]]) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payments, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error("payment_store_write_failed", path=str(self.path), error=str(e))
            raise StorageError(f"Cannot write payment store {self.path}: {e}") from e

    @staticmethod
    def _parse(payment_id: str, raw: Dict[str, Any]) -> PaymentRecord:
        try:
            return PaymentRecord.model_validate(raw)
        except ValidationError as e:
            raise StorageError(f"Stored payment {payment_id} is malformed: {e}") from e

    @staticmethod
    def _guard(stored: PaymentRecord, incoming: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply ``incoming`` over ``stored`` without breaking record invariants.

        The notification flag is owned by ``mark_notified`` and is always kept
        from ``stored``. A status change that ``transition_allowed`` rejects is
        dropped together with ``is_paid`` and ``payment_date``.
        """
        guarded = dict(incoming)
        for key in _NOTIFY_FIELDS:
            guarded[key] = getattr(stored, key)

        current = STATUS_PAID if stored.paid else stored.status
        observed = guarded.get("status") or current
        if not transition_allowed(current, observed):
            logger.info(
                "payment_status_transition_ignored",
                payment_id=stored.payment_id,
                stored_status=current,
                observed_status=observed,
            )
            observed = current
            guarded["payment_date"] = stored.payment_date

        guarded["status"] = observed
        guarded["is_paid"] = observed == STATUS_PAID
        if observed == STATUS_PAID and not guarded.get("payment_date"):
            guarded["payment_date"] = stored.payment_date
        return guarded

    def put(self, record: PaymentRecord) -> None:
        """
        Insert a record under its payment id.

        Writing over an existing id keeps its notification flag and never
        moves its status backwards.
        """
        payment_id = str(record.payment_id)
        with self._lock:
            payments = self._load()
            data = record.model_dump(mode="json")
            current = payments.get(payment_id)
            if current is not None:
                data = self._guard(self._parse(payment_id, current), data)
                record = self._parse(payment_id, data)
                data = record.model_dump(mode="json")
            payments[payment_id] = data
            self._dump(payments)
        logger.info("payment_stored", payment_id=payment_id, status=record.status)

    def get(self, payment_id: str) -> Optional[PaymentRecord]:
        """Return the record for ``payment_id`` or None."""
        with self._lock:
            raw = self._load().get(str(payment_id))
        if raw is None:
            return None
        return self._parse(payment_id, raw)

    def all(self) -> List[PaymentRecord]:
        with self._lock:
            payments = self._load()
        return [self._parse(pid, raw) for pid, raw in payments.items()]

    def update(self, payment_id: str, changes: Dict[str, Any]) -> Optional[PaymentRecord]:
        """
        Merge ``changes`` into an existing record.

        Status changes follow the same rules as ``record_status`` and the
        notification flag cannot be changed here.

        Returns:
            Optional[PaymentRecord]: The updated record, or None if absent (no-op)
        """
        payment_id = str(payment_id)
        with self._lock:
            payments = self._load()
            current = payments.get(payment_id)
            if current is None:
                return None
            merged = {**current, **changes, "payment_id": current.get("payment_id", payment_id)}
            merged = self._guard(self._parse(payment_id, current), merged)
            record = self._parse(payment_id, merged)
            payments[payment_id] = record.model_dump(mode="json")
            self._dump(payments)
        return record

    def record_status(
        self,
        payment_id: str,
        status: str,
        payment_date: Optional[str] = None,
        **fields: Any,
    ) -> Optional[PaymentRecord]:
        """
        Reconcile an observed status into the stored record.

        Status only moves away from pending, except that a paid observation
        always wins. A recorded paid status is never replaced, and a pending
        observation never overwrites a terminal one.

        Args:
            payment_id: Store key
            status: Normalized status observed at the provider
            payment_date: Optional settlement time reported for a paid status
            **fields: Provider diagnostics (provider_status_code, provider_qr_id, voucher_id)

        Returns:
            Optional[PaymentRecord]: The reconciled record, or None if absent
        """
        payment_id = str(payment_id)
        with self._lock:
            payments = self._load()
            raw = payments.get(payment_id)
            if raw is None:
                return None
            record = self._parse(payment_id, raw)

            current = STATUS_PAID if record.paid else record.status
            if not transition_allowed(current, status):
                logger.info(
                    "payment_status_transition_ignored",
                    payment_id=payment_id,
                    stored_status=current,
                    observed_status=status,
                )
                return record

            now = utc_timestamp()
            changes: Dict[str, Any] = {
                "status": status,
                "is_paid": status == STATUS_PAID,
                "updated_at": now,
            }
            if status == STATUS_PAID:
                changes["payment_date"] = payment_date or record.payment_date or now
            changes.update({k: v for k, v in fields.items() if k in _STATUS_FIELDS})

            record = record.model_copy(update=changes)
            payments[payment_id] = record.model_dump(mode="json")
            self._dump(payments)

        if status != current:
            logger.info(
                "payment_status_updated",
                payment_id=payment_id,
                previous_status=current,
                status=status,
            )
        return record

    def mark_notified(self, payment_id: str, notified_at: Optional[str] = None) -> bool:
        """
        Atomically flip ``webhook_notified`` from false to true.

        Returns:
            bool: True if this call set the flag, False if the record is absent
                or was already notified
        """
        payment_id = str(payment_id)
        with self._lock:
            payments = self._load()
            raw = payments.get(payment_id)
            if raw is None or raw.get("webhook_notified"):
                return False
            raw["webhook_notified"] = True
            raw["webhook_notified_at"] = notified_at or utc_timestamp()
            payments[payment_id] = raw
            self._dump(payments)
        return True
