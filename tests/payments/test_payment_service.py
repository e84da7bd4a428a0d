"""Tests for PaymentService: entitlement, refund lock, gateway failures, notifications."""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from photoset.core.errors import NotFoundError, ValidationError
from photoset.models.payment import Payment
from photoset.services.payments.gateway import PaymentGatewayError, TBankClient
from photoset.services.payments.service import PaymentConflictError, PaymentService, to_kopeks
from photoset.services.payments.signature import generate_token

SECRET = "test-secret"


def _gateway(**cancel_kwargs):
    gateway = MagicMock(spec=TBankClient)
    if "side_effect" in cancel_kwargs:
        gateway.cancel_payment.side_effect = cancel_kwargs["side_effect"]
    else:
        gateway.cancel_payment.return_value = {"Success": True, "PaymentId": "refund-1", "Status": "REFUNDED"}
    return gateway


def _reload(db, payment_id) -> Payment:
    db.expire_all()
    return db.query(Payment).filter(Payment.id == payment_id).one()


class TestEntitlement:
    def test_no_payments(self, db, factory):
        user = factory.user()
        assert PaymentService(db, _gateway()).has_entitlement(user.id) is False

    def test_pending_payment_is_not_entitlement(self, db, factory):
        user = factory.user()
        factory.payment(user, status="pending")
        assert PaymentService(db, _gateway()).has_entitlement(user.id) is False

    def test_succeeded_payment(self, db, factory):
        user = factory.user()
        factory.payment(user, status="succeeded")
        assert PaymentService(db, _gateway()).has_entitlement(user.id) is True

    def test_other_users_payment_does_not_count(self, db, factory):
        payer, other = factory.user(), factory.user()
        factory.payment(payer)
        assert PaymentService(db, _gateway()).has_entitlement(other.id) is False

    def test_latest_succeeded(self, db, factory):
        user = factory.user()
        factory.payment(user, amount="100.00")
        newest = factory.payment(user, amount="200.00")
        factory.payment(user, status="pending", amount="300.00")
        assert PaymentService(db, _gateway()).get_latest_succeeded(user.id).id == newest.id


class TestToKopeks:
    def test_whole(self):
        assert to_kopeks(Decimal("500")) == 50000

    def test_half_up(self):
        assert to_kopeks(Decimal("10.005")) == 1001
        assert to_kopeks(Decimal("10.004")) == 1000

    def test_float_input(self):
        assert to_kopeks(499.99) == 49999


class TestRefund:
    def test_full_refund(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, amount="500.00", provider_payment_id="tb-777")
        gateway = _gateway()

        result = PaymentService(db, gateway).refund(payment.id, reason="Автовозврат")

        assert result.amount == Decimal("500.00")
        assert result.provider_refund_id == "refund-1"
        args, kwargs = gateway.cancel_payment.call_args
        assert args[0] == "tb-777"
        assert kwargs["amount_kopeks"] is None
        assert kwargs["receipt"]["Items"][0]["Amount"] == 50000
        stored = _reload(db, payment.id)
        assert stored.status == "refunded"
        assert stored.refund_status == "completed"
        assert stored.refund_reason == "Автовозврат"
        assert stored.refunded_at is not None

    def test_partial_refund_sends_amount(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, amount="500.00")
        gateway = _gateway()

        PaymentService(db, gateway).refund(payment.id, amount=Decimal("120.50"))

        assert gateway.cancel_payment.call_args.kwargs["amount_kopeks"] == 12050
        assert _reload(db, payment.id).refund_amount == Decimal("120.50")

    def test_amount_above_payment_rejected(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, amount="100.00")
        with pytest.raises(ValidationError):
            PaymentService(db, _gateway()).refund(payment.id, amount=Decimal("100.01"))
        assert _reload(db, payment.id).refund_status == "none"

    def test_unknown_payment(self, db):
        with pytest.raises(NotFoundError):
            PaymentService(db, _gateway()).refund(999)

    def test_second_refund_is_conflict(self, db, factory):
        user = factory.user()
        payment = factory.payment(user)
        gateway = _gateway()
        service = PaymentService(db, gateway)
        service.refund(payment.id)

        with pytest.raises(PaymentConflictError) as exc:
            service.refund(payment.id)

        assert exc.value.reason == "already_refunded"
        assert exc.value.status_code == 409
        assert gateway.cancel_payment.call_count == 1

    def test_refund_in_progress_is_conflict(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, refund_status="processing")
        gateway = _gateway()
        with pytest.raises(PaymentConflictError) as exc:
            PaymentService(db, gateway).refund(payment.id)
        assert exc.value.reason == "refund_in_progress"
        gateway.cancel_payment.assert_not_called()

    def test_pending_payment_not_refundable(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, status="pending")
        with pytest.raises(PaymentConflictError) as exc:
            PaymentService(db, _gateway()).refund(payment.id)
        assert exc.value.reason == "not_refundable"

    def test_gateway_error_releases_lock(self, db, factory):
        user = factory.user()
        payment = factory.payment(user)
        gateway = _gateway(side_effect=PaymentGatewayError("T-Bank Cancel failed"))

        with pytest.raises(PaymentGatewayError):
            PaymentService(db, gateway).refund(payment.id)

        stored = _reload(db, payment.id)
        assert stored.status == "succeeded"
        assert stored.refund_status == "failed"

    def test_failed_refund_can_be_retried(self, db, factory):
        user = factory.user()
        payment = factory.payment(user)
        gateway = _gateway(side_effect=[PaymentGatewayError("timeout"), {"Success": True}])
        service = PaymentService(db, gateway)

        with pytest.raises(PaymentGatewayError):
            service.refund(payment.id)
        result = service.refund(payment.id)

        assert result.provider_refund_id is None
        assert _reload(db, payment.id).status == "refunded"

    def test_unexpected_error_releases_lock(self, db, factory):
        user = factory.user()
        payment = factory.payment(user)
        gateway = _gateway(side_effect=[ConnectionError("redis down"), {"Success": True, "PaymentId": "r-2"}])
        service = PaymentService(db, gateway)

        with pytest.raises(PaymentGatewayError) as exc:
            service.refund(payment.id)
        assert isinstance(exc.value.__cause__, ConnectionError)
        assert _reload(db, payment.id).refund_status == "failed"

        service.refund(payment.id)
        assert _reload(db, payment.id).status == "refunded"

    def test_missing_gateway_id_is_gateway_error(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, provider_payment_id=None)
        gateway = _gateway()
        with pytest.raises(PaymentGatewayError):
            PaymentService(db, gateway).refund(payment.id)
        gateway.cancel_payment.assert_not_called()
        assert _reload(db, payment.id).refund_status == "failed"


class TestNotifications:
    def _notification(self, **fields) -> dict:
        payload = {"TerminalKey": "TestTerminal", "Success": True, **fields}
        return {**payload, "Token": generate_token(payload, SECRET)}

    def test_confirmed_marks_succeeded(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, status="pending", provider_payment_id="9001")
        ok = PaymentService(db, _gateway()).process_notification(
            self._notification(PaymentId=9001, Status="CONFIRMED", OrderId="o-1")
        )
        assert ok is True
        assert _reload(db, payment.id).status == "succeeded"

    def test_confirmed_found_by_order_id(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, status="pending", provider_payment_id=None, order_id="order-55")
        PaymentService(db, _gateway()).process_notification(
            self._notification(PaymentId=4242, Status="CONFIRMED", OrderId="order-55")
        )
        stored = _reload(db, payment.id)
        assert stored.status == "succeeded"
        assert stored.provider_payment_id == "4242"

    def test_confirmed_does_not_resurrect_refunded(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, status="refunded", provider_payment_id="9002")
        PaymentService(db, _gateway()).process_notification(
            self._notification(PaymentId=9002, Status="CONFIRMED")
        )
        assert _reload(db, payment.id).status == "refunded"

    def test_refunded_notification(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, provider_payment_id="9003")
        PaymentService(db, _gateway()).process_notification(
            self._notification(PaymentId=9003, Status="REFUNDED")
        )
        stored = _reload(db, payment.id)
        assert stored.status == "refunded"
        assert stored.refund_status == "completed"

    def test_invalid_signature(self, db, factory):
        user = factory.user()
        payment = factory.payment(user, status="pending", provider_payment_id="9004")
        payload = self._notification(PaymentId=9004, Status="CONFIRMED")
        payload["Amount"] = 1
        assert PaymentService(db, _gateway()).process_notification(payload) is False
        assert _reload(db, payment.id).status == "pending"

    def test_unknown_payment_acknowledged(self, db):
        assert PaymentService(db, _gateway()).process_notification(
            self._notification(PaymentId=1, Status="CONFIRMED")
        ) is True
