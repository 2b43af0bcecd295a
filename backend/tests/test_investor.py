import pytest

from ascendancy.config import get_settings
from ascendancy.models import PaymentMethod, User
from ascendancy.services.auth_service import create_session_token


@pytest.fixture
def auth_headers(db_session):
    def _headers(email="investor@example.com"):
        db_session.expire_all()
        user = db_session.query(User).filter(User.email == email).one()
        token, _ = create_session_token(user, get_settings())
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def paid_innovator(client, create_intent, sign_assertion):
    intent = create_intent("innovator", "lump_sum")
    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(intent["merchantReference"], "24000.00")})
    return intent


def test_quest_progress_projects_returns(client, paid_innovator, auth_headers):
    response = client.get("/api/quest-progress", headers=auth_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["totalInvested"] == 2_400_000
    assert body["capitalReclaimedMonth"] == 36
    assert body["annualDividend"] == 1_080_000
    assert [d["year"] for d in body["dividends"]] == list(range(4, 14))
    assert body["totalCollected"] == 13_200_000
    assert body["returnOnBelief"] == 450
    assert body["progress"]["phase"] == "development"
    assert body["subscription"] is None


def test_builder_total_collected(client, create_intent, sign_assertion, auth_headers):
    intent = create_intent("builder", "lump_sum")
    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(intent["merchantReference"], "12000.00")})

    body = client.get("/api/quest-progress", headers=auth_headers()).json()

    assert body["totalCollected"] == 6_600_000


def test_transactions_lists_only_the_investors_own(client, paid_innovator, create_intent, sign_assertion, auth_headers):
    other = create_intent("builder", "lump_sum", email="someone@example.com")
    client.post("/api/payment-webhook", json={"_RESPONSETOKEN": sign_assertion(other["merchantReference"], "12000.00")})

    response = client.get("/api/investor/transactions", headers=auth_headers())

    assert response.status_code == 200
    entries = response.json()
    assert [entry["merchantReference"] for entry in entries] == [paid_innovator["merchantReference"]]
    assert entries[0]["channel"] == "webhook"
    assert entries[0]["amount"] == 2_400_000


def test_payment_methods_can_be_listed_and_deactivated(client, paid_innovator, auth_headers, db_session):
    user = db_session.query(User).filter(User.email == "investor@example.com").one()
    db_session.add(PaymentMethod(user_id=user.id, profile_token="profile-uid", card_type="VISA", last_four_digits="1111"))
    db_session.commit()
    headers = auth_headers()

    methods = client.get("/api/investor/payment-methods", headers=headers).json()
    assert len(methods) == 1 and methods[0]["lastFourDigits"] == "1111"

    assert client.delete(f"/api/investor/payment-methods/{methods[0]['id']}", headers=headers).status_code == 200
    assert client.get("/api/investor/payment-methods", headers=headers).json() == []
    assert client.delete(f"/api/investor/payment-methods/{methods[0]['id']}", headers=headers).status_code == 404


def test_dashboard_requires_a_session(client):
    assert client.get("/api/quest-progress").status_code == 401
    assert client.get("/api/investor/transactions").status_code == 401
