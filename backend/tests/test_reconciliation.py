from urllib.parse import parse_qs, urlparse

import pytest

from ascendancy.exceptions import ReplayDetected
from ascendancy.models import Invoice, Payment, PaymentEvent, Transaction, User
from ascendancy.services.audit_service import AuditService
from ascendancy.services.payment_store import PaymentStore
from ascendancy.services.reconciliation_service import CHANNEL_RETURN, CHANNEL_WEBHOOK, ReconciliationService


def _payment(db_session, reference):
    db_session.expire_all()
    return db_session.query(Payment).filter(Payment.merchant_reference == reference).one()


def _count(db_session, model, reference):
    return db_session.query(model).filter(model.merchant_reference == reference).count()


def test_intent_persists_pending_payment_and_returns_form(client, create_intent, db_session):
    intent = create_intent("builder", "deposit_monthly")

    assert intent["amount"] == 600_000
    assert intent["formData"]["Amount"] == "6000.00"
    assert intent["formData"]["RecurringEnabled"] == "true"
    payment = _payment(db_session, intent["merchantReference"])
    assert payment.status == "pending"
    assert payment.payment_data["kind"] == "deposit_monthly"
    assert payment.payment_data["monthly_amount"] == 50_000
    assert db_session.query(User).filter(User.email == "investor@example.com").count() == 1


def test_invalid_intent_is_rejected_before_persistence(client, db_session):
    response = client.post("/api/create-payment-intent", json={
        "tier": "builder",
        "paymentMethod": "lump_sum",
        "amount": 100,
        "email": "investor@example.com",
        "firstName": "Thandi",
        "lastName": "Mokoena",
    })

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "amount"
    assert db_session.query(Payment).count() == 0
    assert db_session.query(User).count() == 0


def test_deposit_success_routes_to_subscription_setup(client, create_intent, sign_assertion, db_session):
    intent = create_intent("builder", "deposit_monthly")
    reference = intent["merchantReference"]

    response = client.post(
        "/payment-return",
        data={"_RESPONSETOKEN": sign_assertion(reference, "6000.00")},
        follow_redirects=False,
    )

    assert response.status_code == 303
    location = urlparse(response.headers["location"])
    assert location.path == "/subscription-setup"
    query = parse_qs(location.query)
    assert query["reference"] == [reference]
    assert query["paymentId"] == [intent["paymentId"]]
    assert query["monthlyAmount"] == ["500.00"]

    payment = _payment(db_session, reference)
    assert payment.status == "completed"
    user = db_session.query(User).filter(User.id == payment.user_id).one()
    assert user.payment_status == "completed"
    assert user.payment_method == "deposit_monthly"
    assert user.amount == 1_200_000
    assert user.progress["level"] == 1
    assert user.progress["milestones"] == {"capitalReclaimed": False, "dividendPhase": False}


def test_lump_sum_success_routes_to_login(client, create_intent, sign_assertion):
    intent = create_intent("innovator", "lump_sum")

    response = client.get(
        "/payment-return",
        params={"_RESPONSETOKEN": sign_assertion(intent["merchantReference"], "24000.00")},
        follow_redirects=False,
    )

    location = urlparse(response.headers["location"])
    assert location.path == "/login"
    assert parse_qs(location.query)["payment"] == ["success"]


def test_declined_return_routes_to_failure(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]

    response = client.post(
        "/payment-return",
        data={"_RESPONSETOKEN": sign_assertion(reference, "24000.00", result=-1, status="DECLINED")},
        follow_redirects=False,
    )

    assert urlparse(response.headers["location"]).path == "/payment-failed"
    assert _payment(db_session, reference).status == "failed"
    assert db_session.query(Invoice).filter(Invoice.merchant_reference == reference).one().status == "unpaid"


def test_tampered_return_routes_to_verification_failure(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]

    response = client.post(
        "/payment-return",
        data={"_RESPONSETOKEN": sign_assertion(reference, "24000.00", secret="forged-secret")},
        follow_redirects=False,
    )

    assert parse_qs(urlparse(response.headers["location"]).query)["reason"] == ["verification"]
    assert _payment(db_session, reference).status == "pending"


def test_replayed_callback_creates_one_transaction_and_invoice(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]
    token = sign_assertion(reference, "24000.00")

    first = client.post("/api/payment-webhook", headers={"Authorization": f"Bearer {token}"})
    second = client.post("/api/payment-webhook", json={"_RESPONSETOKEN": token})
    third = client.post("/payment-return", data={"_RESPONSETOKEN": token}, follow_redirects=False)

    assert first.json() == {"received": True, "message": "Payment completed"}
    assert second.status_code == 200
    assert second.json()["message"] == "Payment already processed"
    assert urlparse(third.headers["location"]).path == "/login"
    assert _count(db_session, Transaction, reference) == 1
    assert _count(db_session, Invoice, reference) == 1


def test_completed_payment_never_transitions_out(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]

    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(reference, "24000.00")})
    response = client.post(
        "/api/payment-webhook",
        json={"_RESPONSETOKEN": sign_assertion(reference, "24000.00", result=-1, status="DECLINED")},
    )

    assert response.json()["message"] == "Payment already processed"
    assert _payment(db_session, reference).status == "completed"
    actions = [event.action for event in AuditService.get_trail(db_session, reference)]
    assert actions == ["INTENT_CREATED", "PAYMENT_COMPLETED", "REPLAY_DETECTED"]
    assert AuditService.verify_chain(db_session, reference)["valid"] is True


def test_webhook_amount_mismatch_is_rejected_and_not_applied(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]

    response = client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(reference, "1.00")})

    assert response.status_code == 400
    assert reference not in response.text
    assert _payment(db_session, reference).status == "pending"
    assert _count(db_session, Transaction, reference) == 0
    assert (
        db_session.query(PaymentEvent)
        .filter(PaymentEvent.merchant_reference == reference, PaymentEvent.action == "AMOUNT_MISMATCH")
        .count() == 1
    )


def test_foreign_merchant_webhook_is_rejected(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]

    response = client.post(
        "/api/payment-webhook",
        json={"_RESPONSETOKEN": sign_assertion(reference, "24000.00", merchant_id="another-merchant")},
    )

    assert response.status_code == 401
    assert _payment(db_session, reference).status == "pending"


def test_webhook_without_assertion_is_rejected(client):
    assert client.post("/api/payment-webhook", json={}).status_code == 401


def test_webhook_for_unknown_reference_is_acknowledged(client, db_session, sign_assertion):
    response = client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion("ASC-UNKNOWN", "10.00")})

    assert response.status_code == 200
    assert response.json()["message"] == "Unknown reference"


def test_pending_status_leaves_payment_untouched(client, create_intent, sign_assertion, db_session):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]

    response = client.post(
        "/payment-return",
        data={"_RESPONSETOKEN": sign_assertion(reference, "24000.00", result=1, status="PENDING")},
        follow_redirects=False,
    )

    assert urlparse(response.headers["location"]).path == "/payment-pending"
    assert _payment(db_session, reference).status == "pending"
    assert _count(db_session, Transaction, reference) == 0


def test_manual_verify_and_status_polling(client, create_intent, sign_assertion):
    intent = create_intent("builder", "deposit_monthly")
    reference = intent["merchantReference"]
    token = sign_assertion(reference, "6000.00")

    verified = client.post("/api/payment/verify", json={"token": token}).json()
    again = client.post("/api/payment/verify", json={"token": token}).json()
    status = client.get(f"/api/payment/status/{reference}").json()

    assert verified["success"] is True
    assert verified["nextStep"] == "subscription_setup"
    assert again["message"] == "Payment already processed"
    assert again["status"] == "completed"
    assert status["status"] == "completed"
    assert status["requiresSubscriptionSetup"] is True
    assert client.get("/api/payment/status/ASC-NOPE").status_code == 404


def test_unreadable_intent_marks_payment_as_error(client, create_intent, sign_assertion, db_session, gateway_config):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]
    payment = _payment(db_session, reference)
    payment.payment_data = {"kind": "gift_card"}
    db_session.commit()

    result = ReconciliationService.reconcile(
        db_session, gateway_config, sign_assertion(reference, "24000.00"), CHANNEL_RETURN
    )

    assert result.status == "error"
    assert _payment(db_session, reference).status == "error"
    with pytest.raises(ReplayDetected):
        ReconciliationService.reconcile(
            db_session, gateway_config, sign_assertion(reference, "24000.00"), CHANNEL_RETURN
        )


def test_second_purchase_keeps_progress_and_adds_to_commitment(client, create_intent, sign_assertion, db_session):
    first = create_intent("innovator", "lump_sum")
    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(first["merchantReference"], "24000.00")})

    db_session.expire_all()
    user = db_session.query(User).filter(User.email == "investor@example.com").one()
    user.progress = {"level": 3, "phase": "growth"}
    db_session.commit()

    second = create_intent("visionary", "lump_sum")
    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(second["merchantReference"], "36000.00")})

    db_session.expire_all()
    user = db_session.query(User).filter(User.email == "investor@example.com").one()
    assert user.progress == {"level": 3, "phase": "growth"}
    assert user.tier == "visionary"
    assert user.amount == 6_000_000


def test_concurrent_delivery_is_settled_by_the_unique_reference(
    client, create_intent, sign_assertion, gateway_config, db_session, monkeypatch
):
    intent = create_intent("innovator", "lump_sum")
    reference = intent["merchantReference"]
    stale = _payment(db_session, reference)
    assert stale.status == "pending"

    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(reference, "24000.00")})
    # The second delivery read its state before the first one committed.
    monkeypatch.setattr(PaymentStore, "get_transaction_by_reference", lambda self, *args, **kwargs: None)

    with pytest.raises(ReplayDetected):
        ReconciliationService.reconcile(
            db_session, gateway_config, sign_assertion(reference, "24000.00"), CHANNEL_WEBHOOK
        )

    assert _payment(db_session, reference).status == "completed"
    assert _count(db_session, Transaction, reference) == 1
    assert _count(db_session, Invoice, reference) == 1
