"""
Shared test configuration and fixtures for the paybridge test suite.
"""

import json
from typing import Any, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from paybridge.core.config import clear_settings_cache
from paybridge.integrations.payment_gateways import (
    Address,
    MollieAdapter,
    OrderLineItem,
    PaymentMethod,
    PaymentMethodType,
    PaymentOptions,
    RedirectLinks,
)


MOLLIE_ENV_VARS = [
    "MOLLIE_API_KEY",
    "MOLLIE_API_URL",
    "MOLLIE_TEST_MODE",
    "MOLLIE_DEFAULT_CURRENCY",
    "MOLLIE_WEBHOOK_URL",
    "MOLLIE_TIMEOUT_SECONDS",
    "MOLLIE_CONNECT_TIMEOUT_SECONDS",
]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test against default settings, untouched by the host environment."""
    for name in MOLLIE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


def mollie_response(
    status: int,
    body: Union[dict, str, bytes, None] = None,
    reason: Optional[str] = "OK",
) -> MagicMock:
    """Build an object usable as ``async with session.request(...) as response``."""
    response = MagicMock()
    response.status = status
    response.reason = reason
    if isinstance(body, dict):
        raw = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        raw = body.encode("utf-8")
    else:
        raw = body or b""
    response.read = AsyncMock(return_value=raw)

    context = MagicMock()
    context.__aenter__.return_value = response
    context.__aexit__.return_value = False
    return context


def sent_json(call: Any) -> Optional[dict]:
    """Return the JSON body passed to a patched ``ClientSession.request`` call."""
    return call.kwargs.get("json")


@pytest.fixture
def make_response():
    return mollie_response


@pytest.fixture
def request_json():
    return sent_json


@pytest_asyncio.fixture
async def mollie_adapter():
    adapter = MollieAdapter(api_key="test_dHar4XY7LxsDOtmnkVtjNVWXLSlXsM")
    yield adapter
    await adapter.close()


@pytest.fixture
def billing_address():
    return Address(
        name="Jan Willem van Dijk",
        company="Acme BV",
        address1="Keizersgracht 126",
        address2="3rd floor",
        zip="1015 CW",
        city="Amsterdam",
        state="Noord-Holland",
        country="NL",
        phone="+31208202070",
    )


@pytest.fixture
def shipping_address():
    return Address(
        name="Anna",
        address1="Prinsengracht 1",
        zip="1015 DK",
        city="Amsterdam",
        country="NL",
    )


@pytest.fixture
def payment_options(billing_address, shipping_address):
    return PaymentOptions(
        order_id="1001",
        currency="EUR",
        email="jan@example.com",
        locale="nl_NL",
        billing_address=billing_address,
        shipping_address=shipping_address,
        redirect_links=RedirectLinks(
            success_url="https://shop.example.com/orders/1001/success",
            failure_url="https://shop.example.com/orders/1001/failure",
        ),
        webhook_url="https://shop.example.com/webhooks/mollie",
    )


@pytest.fixture
def klarna_line_items():
    return [
        OrderLineItem(
            name="LEGO 42083 Bugatti Chiron",
            price="349.99",
            quantity=1,
            final_amount=349.99,
            vat_rate="21.00",
            vat_amount="60.74",
        ),
        OrderLineItem(
            name="Gift wrapping",
            price=2.5,
            quantity="2",
            final_amount=5,
            type="surcharge",
        ),
    ]


@pytest.fixture
def card_payment_method():
    return PaymentMethod(type=PaymentMethodType.CREDIT_CARD, token="tkn_UqAvArS3gw")


@pytest.fixture
def mandate_payment_method():
    return PaymentMethod(
        type=PaymentMethodType.DIRECT_DEBIT,
        customer_id="cst_8wmqcHMN4U",
        mandate_id="mdt_h3gAaD5zP",
    )


@pytest.fixture
def customer_body():
    return {
        "resource": "customer",
        "id": "cst_8wmqcHMN4U",
        "mode": "test",
        "name": "Jan Willem van Dijk",
        "email": "jan@example.com",
        "locale": "nl_NL",
    }


@pytest.fixture
def open_payment_body():
    return {
        "resource": "payment",
        "id": "tr_7UhSN1zuXS",
        "mode": "test",
        "status": "open",
        "sequenceType": "first",
        "amount": {"currency": "EUR", "value": "10.00"},
        "description": "Order #1001",
        "method": "creditcard",
        "customerId": "cst_8wmqcHMN4U",
    }
