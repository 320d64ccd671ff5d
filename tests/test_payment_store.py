"""
Unit tests for the JSON payment store.
"""
import json

import pytest

from qr_checkout.core.store import PaymentStore, StorageError


class TestPaymentStore:
    """Test suite for PaymentStore."""

    @pytest.mark.unit
    def test_absent_file_is_empty_store(self, payments_file) -> None:
        store = PaymentStore(payments_file)

        assert not store.exists()
        assert store.get("5001") is None
        assert store.all() == []

    @pytest.mark.unit
    def test_put_then_get(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))

        record = store.get("5001")
        assert record is not None
        assert record.payment_id == "5001"
        assert record.customer.email == "a@x.com"
        assert record.status == "pending"

        on_disk = json.loads(payments_file.read_text(encoding="utf-8"))
        assert list(on_disk) == ["5001"]
        assert on_disk["5001"]["product"] == "Mentoría de Cero al Millón"

    @pytest.mark.unit
    def test_no_temp_files_left_behind(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        store.put(record_factory("5002"))

        assert [p.name for p in payments_file.parent.iterdir()] == [payments_file.name]

    @pytest.mark.unit
    def test_unknown_keys_survive_rewrite(self, payments_file, record_factory) -> None:
        record = record_factory("5001").model_dump(mode="json")
        record["legacy_field"] = "kept"
        payments_file.write_text(json.dumps({"5001": record}), encoding="utf-8")

        store = PaymentStore(payments_file)
        store.update("5001", {"gloss": "changed"})

        on_disk = json.loads(payments_file.read_text(encoding="utf-8"))
        assert on_disk["5001"]["legacy_field"] == "kept"
        assert on_disk["5001"]["gloss"] == "changed"

    @pytest.mark.unit
    def test_update_absent_record_is_noop(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        before = payments_file.read_text(encoding="utf-8")

        assert store.update("9999", {"status": "paid"}) is None
        assert payments_file.read_text(encoding="utf-8") == before

    @pytest.mark.unit
    def test_malformed_file_raises(self, payments_file) -> None:
        payments_file.write_text("{not json", encoding="utf-8")
        store = PaymentStore(payments_file)

        with pytest.raises(StorageError):
            store.get("5001")

    @pytest.mark.unit
    def test_non_object_file_raises(self, payments_file) -> None:
        payments_file.write_text("[]", encoding="utf-8")

        with pytest.raises(StorageError):
            PaymentStore(payments_file).all()


class TestStatusReconciliation:
    """Test suite for record_status transitions."""

    @pytest.mark.unit
    def test_pending_to_paid_sets_payment_date(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))

        record = store.record_status("5001", "paid", provider_status_code=2, voucher_id="V-1")

        assert record.status == "paid"
        assert record.is_paid is True
        assert record.payment_date is not None
        assert record.updated_at is not None
        assert record.voucher_id == "V-1"
        assert store.get("5001").status == "paid"

    @pytest.mark.unit
    def test_paid_is_never_downgraded(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        store.record_status("5001", "paid", payment_date="2026-10-19T12:00:00.000Z")

        for observed in ("pending", "expired", "error"):
            record = store.record_status("5001", observed)
            assert record.status == "paid"

        assert store.get("5001").payment_date == "2026-10-19T12:00:00.000Z"

    @pytest.mark.unit
    def test_pending_does_not_overwrite_terminal(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        store.record_status("5001", "expired")

        assert store.record_status("5001", "pending").status == "expired"
        assert store.record_status("5001", "error").status == "expired"

    @pytest.mark.unit
    def test_paid_wins_over_expired(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        store.record_status("5001", "expired")

        record = store.record_status("5001", "paid")

        assert record.status == "paid"
        assert record.is_paid is True

    @pytest.mark.unit
    def test_unknown_fields_ignored(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))

        record = store.record_status("5001", "paid", amount_bob=1.0)

        assert record.amount_bob == 100.0

    @pytest.mark.unit
    def test_absent_record_returns_none(self, payments_file) -> None:
        assert PaymentStore(payments_file).record_status("5001", "paid") is None


class TestMarkNotified:
    """Test suite for the notification flag."""

    @pytest.mark.unit
    def test_flag_set_only_once(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001", status="paid", is_paid=True))

        assert store.mark_notified("5001") is True
        assert store.mark_notified("5001") is False

        record = store.get("5001")
        assert record.webhook_notified is True
        assert record.webhook_notified_at is not None

    @pytest.mark.unit
    def test_absent_record(self, payments_file) -> None:
        assert PaymentStore(payments_file).mark_notified("5001") is False


class TestWriteInvariants:
    """Test suite for invariants kept by put and update."""

    @pytest.mark.unit
    def test_update_cannot_downgrade_paid_or_clear_flag(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        store.record_status("5001", "paid", payment_date="2026-10-19T12:00:00.000Z")
        store.mark_notified("5001")

        record = store.update(
            "5001", {"status": "pending", "is_paid": False, "webhook_notified": False}
        )

        assert record.status == "paid"
        assert record.is_paid is True
        assert record.payment_date == "2026-10-19T12:00:00.000Z"
        assert record.webhook_notified is True
        assert store.get("5001").webhook_notified is True

    @pytest.mark.unit
    def test_update_keeps_terminal_status(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001"))
        store.record_status("5001", "expired")

        assert store.update("5001", {"status": "pending"}).status == "expired"
        assert store.update("5001", {"status": "paid"}).status == "paid"

    @pytest.mark.unit
    def test_update_cannot_set_flag(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001", status="paid", is_paid=True))

        store.update("5001", {"webhook_notified": True})

        assert store.get("5001").webhook_notified is False
        assert store.mark_notified("5001") is True

    @pytest.mark.unit
    def test_reput_keeps_paid_and_flag(self, payments_file, record_factory) -> None:
        store = PaymentStore(payments_file)
        store.put(record_factory("5001", status="paid", is_paid=True))
        store.mark_notified("5001")

        store.put(record_factory("5001", gloss="rewritten"))

        record = store.get("5001")
        assert record.status == "paid"
        assert record.is_paid is True
        assert record.webhook_notified is True
        assert record.gloss == "rewritten"
