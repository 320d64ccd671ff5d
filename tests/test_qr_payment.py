"""
Unit tests for QR payment creation.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from qr_checkout.core.qr_payment import (
    PaymentValidationError,
    QRPaymentService,
    as_data_uri,
    convert_brl_to_bob,
    expiration_date,
    generate_transaction_id,
    to_cents,
)
from qr_checkout.core.store import PaymentStore
from qr_checkout.integrations.bnb_auth import BankAuthClient
from qr_checkout.integrations.bnb_client import BNBQRClient


@pytest.fixture
def make_service(auth_http, bnb_http):
    def factory(settings) -> QRPaymentService:
        auth = BankAuthClient(settings=settings, http_client=auth_http)
        bnb = BNBQRClient(auth, settings=settings, http_client=bnb_http)
        return QRPaymentService(bnb, PaymentStore(settings.payments_file), settings=settings)

    return factory


@pytest.fixture
def qr_service(make_service, test_settings) -> QRPaymentService:
    return make_service(test_settings)


CUSTOMER = {"name": "Ana", "email": "a@x.com", "phone": "+59170000000"}


class TestHelpers:
    """Test suite for amount and id helpers."""

    @pytest.mark.unit
    def test_transaction_id_format(self) -> None:
        prefix, millis, suffix = generate_transaction_id("MENT").split("_")

        assert prefix == "MENT"
        assert millis.isdigit()
        assert len(suffix) == 13

    @pytest.mark.unit
    def test_amount_rounding(self) -> None:
        assert to_cents(100) == Decimal("100.00")
        assert to_cents("10.005") == Decimal("10.01")
        assert convert_brl_to_bob(100) == Decimal("150.00")
        assert convert_brl_to_bob("33.33", 1.5) == Decimal("50.00")

    @pytest.mark.unit
    def test_expiration_is_next_day(self) -> None:
        assert expiration_date(date(2026, 12, 31)) == "2027-01-01"

    @pytest.mark.unit
    def test_data_uri(self) -> None:
        assert as_data_uri("abc") == "data:image/png;base64,abc"
        assert as_data_uri("data:image/jpeg;base64,abc") == "data:image/jpeg;base64,abc"


class TestQRPaymentService:
    """Test suite for QRPaymentService."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_payment_success(self, qr_service, fake_bank, payments_file) -> None:
        result = await qr_service.create_payment(CUSTOMER, 100)

        assert result.success is True
        assert result.payment_id == "5001"
        assert result.qr_id == "5001"
        assert result.status == "pending"
        assert result.amount_bob == 100.0
        assert result.qr_code_image == "data:image/png;base64,iVBORw0KGgoAAAANS"
        assert result.transaction_id.startswith("MENT_")

        sent = fake_bank.create_calls[0]
        tomorrow = datetime.now(timezone.utc).date() + timedelta(days=1)
        assert sent == {
            "currency": "BOB",
            "gloss": "Mentoría - Ana",
            "amount": "100.00",
            "singleUse": True,
            "expirationDate": tomorrow.isoformat(),
        }

        stored = PaymentStore(payments_file).get("5001")
        assert stored.status == "pending"
        assert stored.is_paid is False
        assert stored.product == "Mentoría de Cero al Millón"
        assert stored.product_type == "main"
        assert stored.customer.email == "a@x.com"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_data_uri_preserved(self, qr_service, fake_bank) -> None:
        fake_bank.create_response = {
            "success": True,
            "qrId": "7001",
            "qr": "data:image/png;base64,AAAA",
        }

        result = await qr_service.create_payment(CUSTOMER, 50)

        assert result.qr_code_image == "data:image/png;base64,AAAA"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_extras_and_upsell_are_stored(self, qr_service, payments_file) -> None:
        extras = [{"sku": "bonus", "amount": 10}]

        await qr_service.create_payment(
            CUSTOMER, 120, extras=extras, product="Upsell Pack", product_type="upsell"
        )

        stored = PaymentStore(payments_file).get("5001")
        assert stored.extras == extras
        assert stored.product == "Upsell Pack"
        assert stored.product_type == "upsell"

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "customer,amount,message",
        [
            (CUSTOMER, -5, "greater than zero"),
            (CUSTOMER, 0, "greater than zero"),
            (CUSTOMER, "abc", "must be a number"),
            (CUSTOMER, None, "Required fields"),
            ({"name": "Ana"}, 100, "Required fields"),
            ({}, 100, "Required fields"),
            (CUSTOMER, 1e27, "too large"),
            (CUSTOMER, 0.001, "greater than zero"),
        ],
    )
    async def test_validation_errors_make_no_calls(
        self, qr_service, fake_bank, payments_file, customer, amount, message
    ) -> None:
        with pytest.raises(PaymentValidationError, match=message):
            await qr_service.create_payment(customer, amount)

        assert fake_bank.auth_calls == 0
        assert fake_bank.create_calls == []
        assert not payments_file.exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_provider_failure_returns_failure(
        self, qr_service, fake_bank, payments_file
    ) -> None:
        fake_bank.create_response = {"success": False, "message": "Cuenta inhabilitada"}

        result = await qr_service.create_payment(CUSTOMER, 100)

        assert result.success is False
        assert result.error == "Error creating the payment QR code"
        assert result.details == "Cuenta inhabilitada"
        assert PaymentStore(payments_file).all() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_brl_amount_converted(self, make_service, settings_factory, fake_bank) -> None:
        service = make_service(settings_factory(amount_currency="BRL"))

        result = await service.create_payment(CUSTOMER, 100)

        assert result.amount_bob == 150.0
        assert fake_bank.create_calls[0]["amount"] == "150.00"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_payment_ids_unique(self, qr_service, payments_file) -> None:
        first = await qr_service.create_payment(CUSTOMER, 100)
        second = await qr_service.create_payment(CUSTOMER, 100)

        assert first.payment_id != second.payment_id
        assert first.transaction_id != second.transaction_id
        assert len(PaymentStore(payments_file).all()) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_diagnostic_paid_does_not_mark_payment_paid(
        self, qr_service, fake_bank, payments_file
    ) -> None:
        fake_bank.status_response = {"success": True, "statusId": 2}

        result = await qr_service.create_payment(CUSTOMER, 100)

        assert result.status == "pending"
        assert fake_bank.status_calls == [{"qrId": "5001"}]
        assert PaymentStore(payments_file).get("5001").status == "pending"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_diagnostic_check_can_be_disabled(
        self, make_service, settings_factory, fake_bank
    ) -> None:
        service = make_service(settings_factory(diagnostic_status_check=False))

        await service.create_payment(CUSTOMER, 100)

        assert fake_bank.status_calls == []
