import json
import logging

import pytest

from ascendancy.config import GatewayConfig, Settings
from ascendancy.exceptions import ConfigurationError
from ascendancy.logging_config import JsonFormatter
from ascendancy.services import email_service
from ascendancy.services.audit_service import AuditService
from ascendancy.services.email_service import OTP_SUBJECT, EmailService


def test_missing_gateway_credentials_are_fatal():
    settings = Settings(ADUMO_MERCHANT_ID="", ADUMO_JWT_SECRET="", _env_file=None)

    with pytest.raises(ConfigurationError) as exc_info:
        GatewayConfig.from_settings(settings)
    assert "ADUMO_MERCHANT_ID" in exc_info.value.message
    assert "ADUMO_JWT_SECRET" in exc_info.value.message


def test_collection_day_must_exist_in_every_month(gateway_config):
    settings = Settings(
        ADUMO_MERCHANT_ID="m", ADUMO_APPLICATION_ID="a", ADUMO_JWT_SECRET="s",
        ADUMO_CLIENT_ID="c", ADUMO_CLIENT_SECRET="cs", ADUMO_COLLECTION_DAY=31, _env_file=None,
    )

    with pytest.raises(ConfigurationError):
        GatewayConfig.from_settings(settings)


def test_gateway_urls_follow_public_base(gateway_config):
    assert gateway_config.return_url == "https://api.ascendancy.test/payment-return"
    assert gateway_config.notify_url == "https://api.ascendancy.test/api/payment-webhook"
    assert gateway_config.api_base_url == "https://adumo.test"


def test_health_reports_database_and_gateway(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["gateway"] == "configured"


def test_audit_chain_detects_tampering(db_session):
    AuditService.log(db_session, "ASC-AUDIT", "INTENT_CREATED", payload={"amount": 100})
    AuditService.log(db_session, "ASC-AUDIT", "PAYMENT_COMPLETED", payload={"amount": 100})
    assert AuditService.verify_chain(db_session, "ASC-AUDIT")["valid"] is True

    first = AuditService.get_trail(db_session, "ASC-AUDIT")[0]
    first.payload_hash = "0" * 64
    db_session.commit()

    result = AuditService.verify_chain(db_session, "ASC-AUDIT")
    assert result["valid"] is False
    assert result["total_entries"] == 2


class RecordingSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.logged_in = None
        self.tls = False
        RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.tls = True

    def login(self, username, password):
        self.logged_in = username

    def sendmail(self, sender, recipients, message):
        self.messages.append((sender, recipients, message))


def test_otp_email_is_sent_over_smtp(monkeypatch):
    RecordingSMTP.instances = []
    monkeypatch.setattr(email_service.smtplib, "SMTP", RecordingSMTP)
    settings = Settings(
        SMTP_HOST="smtp.example.com", SMTP_PORT=587, SMTP_USERNAME="mailer", SMTP_PASSWORD="pw", _env_file=None,
    )

    assert EmailService(settings).send_otp("investor@example.com", "123456", 10) is True

    server = RecordingSMTP.instances[0]
    assert server.tls is True
    assert server.logged_in == "mailer"
    sender, recipients, message = server.messages[0]
    assert recipients == ["investor@example.com"]
    assert OTP_SUBJECT in message
    assert "123456" in message


def test_email_is_skipped_without_smtp_settings(monkeypatch):
    RecordingSMTP.instances = []
    monkeypatch.setattr(email_service.smtplib, "SMTP", RecordingSMTP)

    assert EmailService(Settings(SMTP_HOST="", _env_file=None)).send_otp("investor@example.com", "123456", 10) is False
    assert RecordingSMTP.instances == []


def test_json_log_lines_carry_payment_context():
    record = logging.LogRecord("ascendancy.test", logging.INFO, __file__, 1, "Replay for %s", ("ASC-1",), None)
    record.merchant_reference = "ASC-1"
    record.channel = "webhook"

    entry = json.loads(JsonFormatter().format(record))

    assert entry["msg"] == "Replay for ASC-1"
    assert entry["merchant_reference"] == "ASC-1"
    assert entry["channel"] == "webhook"
    assert "schedule_id" not in entry
