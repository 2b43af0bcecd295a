import json
import os
import tempfile
from datetime import datetime, timedelta, timezone

import httpx
import pytest

# Settings are read at import time, so the test environment goes in first
_TEST_DB_DIR = tempfile.mkdtemp(prefix="ascendancy-tests-")
os.environ.update({
    "ENVIRONMENT": "local",
    "DATABASE_URL": f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}",
    "ADUMO_MERCHANT_ID": "merchant-test-uid",
    "ADUMO_APPLICATION_ID": "application-test-uid",
    "ADUMO_JWT_SECRET": "adumo-shared-secret-for-tests-0123456789",
    "ADUMO_CLIENT_ID": "client-test-id",
    "ADUMO_CLIENT_SECRET": "client-test-secret",
    "ADUMO_API_BASE_URL": "https://adumo.test",
    "ADUMO_FORM_URL": "https://adumo.test/product/payment/v1/initialisevirtual",
    "PUBLIC_BASE_URL": "https://api.ascendancy.test",
    "FRONTEND_BASE_URL": "https://ascendancy.test",
    "SESSION_SECRET": "session-secret-for-tests",
    "WEBHOOK_SECRET": "webhook-secret-for-tests",
    "SMTP_HOST": "",
})

from fastapi.testclient import TestClient
from jose import jwt

from ascendancy.config import get_gateway_config, get_settings
from ascendancy.database import Base, SessionLocal, engine
from ascendancy.main import app
from ascendancy.models import User
from ascendancy.routes.deps import get_email_service, get_gateway_client
from ascendancy.routes.payment import intent_throttle
from ascendancy.services.gateway_client import AdumoClient
from ascendancy.utils.rate_limiter import otp_request_limiter, otp_verify_limiter

get_settings.cache_clear()
get_gateway_config.cache_clear()


class FakeAdumo:
    """Stands in for the Adumo REST API behind httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.oauth_status = 200
        self.include_schedule_id = True
        self.tokenize_status = 200
        self.subscriber_status = 201

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.requests.append((request.method, request.url.path, body))
        path = request.url.path

        if path == "/oauth/token":
            if self.oauth_status != 200:
                return httpx.Response(self.oauth_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "oauth-access-token", "expires_in": 3600})

        if path == "/products/tokenization/v1/card":
            if self.tokenize_status != 200:
                return httpx.Response(self.tokenize_status, json={"message": "Card declined by issuer"})
            return httpx.Response(200, json={
                "tokenUid": "card-token-uid",
                "profileUid": "profile-uid",
                "cardType": "VISA",
            })

        if path == "/products/subscriptions/v1/subscribers":
            if self.subscriber_status >= 400:
                return httpx.Response(self.subscriber_status, json={"message": "Subscriber service unavailable"})
            data = {"subscriberUid": "subscriber-uid"}
            if self.include_schedule_id:
                data["scheduleUid"] = "schedule-uid"
            return httpx.Response(201, json=data)

        if path == "/products/subscriptions/v1/subscribers/subscriber-uid/schedules":
            return httpx.Response(201, json={"scheduleUid": "fallback-schedule-uid"})

        return httpx.Response(404, json={"message": "Not found"})

    def calls_to(self, path: str) -> list:
        return [r for r in self.requests if r[1] == path]


class FakeEmailService:
    def __init__(self):
        self.sent = []

    def send_otp(self, to_email, code, expiry_minutes):
        self.sent.append({"to": to_email, "code": code, "expiry_minutes": expiry_minutes})
        return True


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    otp_request_limiter.reset()
    otp_verify_limiter.reset()
    intent_throttle.limiter.reset()
    yield


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway_config():
    return get_gateway_config()


@pytest.fixture
def fake_adumo():
    return FakeAdumo()


@pytest.fixture
def adumo_client(gateway_config, fake_adumo):
    client = AdumoClient(gateway_config, transport=httpx.MockTransport(fake_adumo.handler))
    yield client
    client.close()


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def client(db_session, adumo_client, fake_email):
    app.dependency_overrides[get_gateway_client] = lambda: adumo_client
    app.dependency_overrides[get_email_service] = lambda: fake_email
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sign_assertion(gateway_config):
    """Build an assertion the way Adumo signs its callbacks."""

    def _sign(
        merchant_reference,
        amount,
        result=0,
        status="AUTHORISED",
        merchant_id=None,
        application_id=None,
        secret=None,
        expires_in=timedelta(minutes=10),
        **extra,
    ):
        now = datetime.now(timezone.utc)
        claims = {
            "iss": "Adumo Online",
            "cuid": merchant_id or gateway_config.merchant_id,
            "auid": application_id or gateway_config.application_id,
            "mref": merchant_reference,
            "amount": amount,
            "result": result,
            "status": status,
            "tx_index": "tx-index-1",
            "iat": int(now.timestamp()),
            "exp": int((now + expires_in).timestamp()),
        }
        claims.update(extra)
        return jwt.encode(claims, secret or gateway_config.jwt_secret, algorithm="HS256")

    return _sign


@pytest.fixture
def create_intent(client):
    def _create(tier="builder", payment_method="deposit_monthly", email="investor@example.com", amount=None):
        payload = {
            "tier": tier,
            "paymentMethod": payment_method,
            "email": email,
            "firstName": "Thandi",
            "lastName": "Mokoena",
            "phone": "+27821234567",
        }
        if amount is not None:
            payload["amount"] = amount
        response = client.post("/api/create-payment-intent", json=payload)
        assert response.status_code == 200, response.text
        return response.json()

    return _create


@pytest.fixture
def investor(db_session):
    user = User(
        email="investor@example.com",
        first_name="Thandi",
        last_name="Mokoena",
        tier="innovator",
        payment_method="lump_sum",
        amount=2_400_000,
        payment_status="completed",
        progress={},
    )
    db_session.add(user)
    db_session.commit()
    return user
