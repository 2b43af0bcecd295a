from datetime import date

import pytest
from jose import jwt

from ascendancy.exceptions import AuthError, GatewayError, ValidationError
from ascendancy.models.payment import Payment
from ascendancy.schemas.schemas import CardDetails, DepositMonthlyIntent, LumpSumIntent
from ascendancy.services.gateway_client import (
    OAUTH_PATH, SUBSCRIBERS_PATH, TOKENIZE_PATH, ReturnUrls, SubscriberDetails,
    generate_merchant_reference,
)

VALID_CARD = CardDetails(
    cardNumber="4111 1111 1111 1111",
    expiryMonth=12,
    expiryYear=2099,
    cvv="123",
    cardholderName="Thandi Mokoena",
)

SUBSCRIBER = SubscriberDetails(first_name="Thandi", last_name="Mokoena", email="investor@example.com")


def test_oauth_token_is_cached(adumo_client, fake_adumo):
    assert adumo_client.get_oauth_token() == "oauth-access-token"
    assert adumo_client.get_oauth_token() == "oauth-access-token"

    assert len(fake_adumo.calls_to(OAUTH_PATH)) == 1


def test_rejected_credentials_raise_auth_error(adumo_client, fake_adumo):
    fake_adumo.oauth_status = 401

    with pytest.raises(AuthError):
        adumo_client.get_oauth_token()


def test_tokenize_card_returns_tokens_and_masked_card(adumo_client, fake_adumo):
    card = adumo_client.tokenize_card(VALID_CARD)

    assert card.card_token == "card-token-uid"
    assert card.profile_token == "profile-uid"
    assert card.last_four_digits == "1111"
    sent = fake_adumo.calls_to(TOKENIZE_PATH)[0][2]
    assert sent["cardNumber"] == "4111111111111111"
    assert sent["merchantUid"] == "merchant-test-uid"


def test_malformed_card_is_rejected_before_any_call(adumo_client, fake_adumo):
    bad_card = VALID_CARD.model_copy(update={"card_number": "4111111111111112", "cvv": "1"})

    with pytest.raises(ValidationError) as exc_info:
        adumo_client.tokenize_card(bad_card)

    fields = {error["field"] for error in exc_info.value.errors}
    assert fields == {"cardNumber", "cvv"}
    assert fake_adumo.requests == []


def test_remote_rejection_raises_gateway_error(adumo_client, fake_adumo):
    fake_adumo.tokenize_status = 422

    with pytest.raises(GatewayError) as exc_info:
        adumo_client.tokenize_card(VALID_CARD)
    assert exc_info.value.upstream_status == 422


def test_subscriber_with_schedule_needs_one_call(adumo_client, fake_adumo):
    result = adumo_client.create_subscriber_and_schedule(
        "card-token-uid", "profile-uid", 50_000, 12, date(2026, 11, 1), 1, "ASC-REF", SUBSCRIBER,
    )

    assert result.subscriber_id == "subscriber-uid"
    assert result.schedule_id == "schedule-uid"
    assert result.used_schedule_fallback is False
    schedule = fake_adumo.calls_to(SUBSCRIBERS_PATH)[0][2]["schedule"]
    assert schedule["collectionValue"] == "500.00"
    assert schedule["numberOfCollections"] == 12
    assert schedule["endDate"] == "2027-10-01"


def test_missing_schedule_id_falls_back_to_explicit_schedule(adumo_client, fake_adumo):
    fake_adumo.include_schedule_id = False

    result = adumo_client.create_subscriber_and_schedule(
        "card-token-uid", "profile-uid", 50_000, 12, date(2026, 11, 1), 1, "ASC-REF", SUBSCRIBER,
    )

    assert result.schedule_id == "fallback-schedule-uid"
    assert result.used_schedule_fallback is True
    assert len(fake_adumo.calls_to(f"{SUBSCRIBERS_PATH}/subscriber-uid/schedules")) == 1


def test_merchant_references_are_unique():
    references = {generate_merchant_reference() for _ in range(200)}
    assert len(references) == 200


def _payment(amount, intent):
    return Payment(
        id="payment-id",
        user_id="user-id",
        merchant_reference=intent.merchant_reference,
        amount=amount,
        payment_data=intent.model_dump(),
    )


def test_virtual_form_for_deposit_includes_recurring_block(adumo_client, gateway_config):
    intent = DepositMonthlyIntent(
        tier="builder", merchant_reference="ASC-1", total_commitment=1_200_000,
        deposit_amount=600_000, monthly_amount=50_000, total_months=12,
    )
    urls = ReturnUrls(gateway_config.return_url, gateway_config.return_url, gateway_config.notify_url)

    form = adumo_client.build_virtual_form_payload(_payment(600_000, intent), urls, intent, SUBSCRIBER)

    fields = form.form_fields
    assert form.url == gateway_config.form_url
    assert fields["Amount"] == "6000.00"
    assert fields["MerchantReference"] == "ASC-1"
    assert fields["RedirectSuccessfulURL"] == "https://api.ascendancy.test/payment-return"
    assert fields["NotificationURL"] == "https://api.ascendancy.test/api/payment-webhook"
    assert fields["RecurringCollectionValue"] == "500.00"
    assert fields["RecurringNumberOfCollections"] == "12"

    claims = jwt.decode(fields["Token"], gateway_config.jwt_secret, algorithms=["HS256"])
    assert claims["cuid"] == gateway_config.merchant_id
    assert claims["auid"] == gateway_config.application_id
    assert claims["mref"] == "ASC-1"
    assert claims["amount"] == "6000.00"
    assert 0 < claims["exp"] - claims["iat"] <= 600


def test_virtual_form_for_lump_sum_has_no_recurring_block(adumo_client, gateway_config):
    intent = LumpSumIntent(tier="innovator", merchant_reference="ASC-2", total_commitment=2_400_000)
    urls = ReturnUrls(gateway_config.return_url, gateway_config.return_url, gateway_config.notify_url)

    form = adumo_client.build_virtual_form_payload(_payment(2_400_000, intent), urls, intent, SUBSCRIBER)

    assert form.form_fields["Amount"] == "24000.00"
    assert "RecurringEnabled" not in form.form_fields
