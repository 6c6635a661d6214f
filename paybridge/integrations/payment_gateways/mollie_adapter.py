"""
Mollie Payment Gateway Adapter

Maps the generic payment gateway interface onto the Mollie v2 REST API:
first and recurring payments, refunds, cancellations and customer
registration. Every call goes through ``_commit`` which turns the Mollie
JSON (or error body) into a ``GatewayResponse``.
"""

import asyncio
import json
import secrets
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp
from aiohttp import ClientTimeout

from paybridge.core.config import get_settings
from paybridge.core.logging import get_logger

from .base import (
    Address,
    CustomerDetails,
    GatewayResponse,
    OrderLineItem,
    PaymentError,
    PaymentGateway,
    PaymentGatewayType,
    PaymentMethod,
    PaymentMethodType,
    PaymentOptions,
)

logger = get_logger(__name__)

SOFT_DECLINE_REASONS = frozenset({
    "insufficient_funds",
    "card_expired",
    "card_declined",
    "temporary_failure",
    "verification_required",
})

AUTHORIZATION_PREFIX = "Bearer "
CONTENT_TYPE = "application/json"

# Methods that never take a sequenceType or a payment token
REDIRECT_ONLY_METHODS = ("klarna", "paypal")

TOKEN_FIELDS = {
    "creditcard": "cardToken",
    "applepay": "applePayPaymentToken",
    "googlepay": "googlePayPaymentToken",
}

SUCCESS_STATUSES = ("paid", "authorized")
RECURRING_FAILURE_STATUSES = ("failed", "canceled", "expired", "declined")

TWO_PLACES = Decimal("0.01")


class MollieAdapter(PaymentGateway):
    """Mollie payment gateway adapter."""

    supported_countries = [
        "AT", "BE", "DE", "DK", "FI", "FR", "IE", "IT", "NL",
        "NO", "PT", "ES", "SE", "CH", "GB", "US", "LU",
    ]
    supported_cardtypes = ["visa", "master", "american_express"]
    default_currency = "EUR"
    money_format = "cents"
    homepage_url = "https://www.mollie.com"
    display_name = "Mollie"

    def __init__(
        self,
        api_key: Optional[str] = None,
        test: Optional[bool] = None,
        webhook_url: Optional[str] = None,
        default_currency: Optional[str] = None,
        api_url: Optional[str] = None,
        **config
    ):
        """
        Initialize Mollie adapter.

        Arguments left as None fall back to the application settings.

        Args:
            api_key: Mollie API key (``test_...`` or ``live_...``)
            test: Force test mode; inferred from the key prefix when None
            webhook_url: Default webhook URL for payments without one
            default_currency: Currency used when the options carry none
            api_url: Override for the API base URL
            **config: Additional configuration

        Raises:
            ValueError: If no API key is available
        """
        settings = get_settings()

        api_key = api_key or settings.mollie_api_key
        if not api_key:
            raise ValueError("Missing required parameter: api_key")

        super().__init__(api_key=api_key, test=test, webhook_url=webhook_url, **config)
        self.api_key = api_key

        if test is None:
            test = settings.mollie_test_mode
        self.test = api_key.startswith("test_") if test is None else test

        self.webhook_url = webhook_url or settings.mollie_webhook_url
        self.default_currency = (default_currency or settings.mollie_default_currency).upper()
        self.api_url = (api_url or settings.mollie_api_url).rstrip("/")

        # Session is created lazily so the adapter can be built outside an event loop
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = ClientTimeout(
            total=settings.mollie_timeout_seconds,
            connect=settings.mollie_connect_timeout_seconds,
        )

    def _get_gateway_type(self) -> PaymentGatewayType:
        """Return the gateway type identifier."""
        return PaymentGatewayType.MOLLIE

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers=self._headers(),
            )
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"{AUTHORIZATION_PREFIX}{self.api_key}",
            "Content-Type": CONTENT_TYPE,
            "Accept": CONTENT_TYPE,
        }

    # Public operations

    async def purchase(
        self,
        amount: int,
        payment_method: PaymentMethod,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """
        Create a payment.

        A payment method that already carries a customer and a mandate is
        charged as a recurring payment. Otherwise a customer is resolved
        (reused or created) and a ``first`` payment is created for it.

        Args:
            amount: Amount in cents
            payment_method: Payment method details
            options: Order, customer and redirect options

        Returns:
            GatewayResponse for the payment, or the failed customer
            registration response if the customer could not be created
        """
        options = options or PaymentOptions()

        if self._is_recurring_payment(payment_method):
            return await self.recurring(amount, payment_method, options)

        customer = await self._add_customer_to_payment(payment_method, options)
        if isinstance(customer, GatewayResponse):
            return customer

        post: Dict[str, Any] = {}
        self._add_purchase_data(post, amount, payment_method, options)
        post["customerId"] = customer
        self._add_payment_token(post, payment_method)
        self._add_addresses(post, options)

        return await self._commit("payments", post)

    async def recurring(
        self,
        amount: int,
        payment_method: PaymentMethod,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """Charge an existing mandate."""
        options = options or PaymentOptions()

        post: Dict[str, Any] = {}
        self._add_recurring_data(post, amount, payment_method, options)

        return await self._commit("payments", post)

    async def refund(
        self,
        amount: int,
        authorization: str,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """
        Refund (part of) a payment.

        Args:
            amount: Amount to refund in cents
            authorization: Mollie payment ID (``tr_...``)
            options: Order options; ``order_id`` feeds the description

        Returns:
            GatewayResponse for the refund resource
        """
        options = options or PaymentOptions()

        post: Dict[str, Any] = {}
        self._add_refund_data(post, amount, options)

        return await self._commit(f"payments/{authorization}/refunds", post)

    async def void(
        self,
        authorization: str,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """Cancel a payment that is still open."""
        return await self._commit(f"payments/{authorization}/cancel", {})

    async def create_customer(
        self,
        customer: Union[CustomerDetails, PaymentOptions, None] = None,
    ) -> GatewayResponse:
        """
        Register a customer.

        Args:
            customer: Explicit customer details, or payment options whose
                billing name, email and locale describe the customer

        Returns:
            GatewayResponse whose ``authorization`` is the ``cst_...`` ID
        """
        post: Dict[str, Any] = {}
        self._add_customer_creation_data(post, customer)

        return await self._commit("customers", post)

    async def get_payment_status(self, authorization: str) -> GatewayResponse:
        """Fetch a payment and normalize its current state."""
        return await self._commit(f"payments/{authorization}", method="GET")

    async def revoke_mandate(self, customer_id: str, mandate_id: str) -> GatewayResponse:
        """
        Revoke a customer's mandate so it can no longer be charged.

        Mollie answers with ``204 No Content`` on success.
        """
        return await self._commit(
            f"customers/{customer_id}/mandates/{mandate_id}",
            method="DELETE",
        )

    async def health_check(self) -> bool:
        """
        Check if the Mollie API is accessible with the configured key.

        Returns:
            True if Mollie is responding correctly, False on bad credentials

        Raises:
            PaymentError: If the API cannot be reached or misbehaves
        """
        endpoint = self._build_request_url("methods")
        try:
            async with self.session.request("GET", endpoint) as response:
                if response.status == 200:
                    return True
                if response.status == 401:
                    logger.warning("Mollie health check: Authentication failed")
                    return False
                raise PaymentError(
                    message=f"Mollie health check failed with HTTP {response.status}",
                    error_code="mollie_health_check_error",
                    provider="mollie",
                )
        except asyncio.TimeoutError as e:
            logger.error("Mollie health check timed out")
            raise PaymentError(
                message=f"Mollie health check timed out after {self._timeout.total}s",
                error_code="timeout",
                provider="mollie",
            ) from e
        except aiohttp.ClientError as e:
            logger.error(f"Mollie health check failed: {e}")
            raise PaymentError(
                message=f"Mollie health check failed: {str(e)}",
                error_code="mollie_health_check_error",
                provider="mollie",
            )

    def get_supported_currencies(self) -> List[str]:
        """Get list of supported currencies for Mollie."""
        return [
            "EUR", "GBP", "USD", "CHF", "DKK", "NOK", "SEK", "PLN",
            "CZK", "HUF", "RON", "BGN", "AUD", "CAD", "HKD", "NZD",
        ]

    def get_supported_payment_methods(self) -> List[PaymentMethodType]:
        """Get list of supported payment method types for Mollie."""
        return list(PaymentMethodType)

    # Request shaping

    def _is_recurring_payment(self, payment_method: PaymentMethod) -> bool:
        return bool(payment_method.customer_id) and bool(payment_method.mandate_id)

    async def _add_customer_to_payment(
        self,
        payment_method: PaymentMethod,
        options: PaymentOptions,
    ) -> Union[str, GatewayResponse]:
        """Return the customer ID to attach, or the failed registration response."""
        if payment_method.customer_id:
            return payment_method.customer_id

        customer_response = await self.create_customer(options)
        if not customer_response.success:
            return customer_response

        return customer_response.params.get("id")

    def _add_customer_creation_data(
        self,
        post: Dict[str, Any],
        customer: Union[CustomerDetails, PaymentOptions, None],
    ) -> None:
        if isinstance(customer, CustomerDetails):
            post["name"] = customer.name
            post["email"] = customer.email
            post["locale"] = customer.locale
            return

        options = customer or PaymentOptions()
        billing = options.billing_address or Address()

        post["name"] = billing.name
        post["email"] = options.email
        post["locale"] = options.locale

    def _add_purchase_data(
        self,
        post: Dict[str, Any],
        amount: int,
        payment_method: PaymentMethod,
        options: PaymentOptions,
    ) -> None:
        post["amount"] = self._format_amount(amount, options.currency)
        post["description"] = f"Order #{self._order_reference(options)}"
        post["method"] = payment_method.method_name
        post["locale"] = options.locale
        post["metadata"] = payment_method.metadata or None

        if post["method"] not in REDIRECT_ONLY_METHODS:
            post["sequenceType"] = "first"

        self._add_urls(post, options)
        if post["method"] == PaymentMethodType.KLARNA.value:
            self._add_klarna_lines(post, options)

    def _add_recurring_data(
        self,
        post: Dict[str, Any],
        amount: int,
        payment_method: PaymentMethod,
        options: PaymentOptions,
    ) -> None:
        post["amount"] = self._format_amount(amount, options.currency)
        post["description"] = f"Order #{self._order_reference(options)}"
        post["sequenceType"] = "recurring"
        post["customerId"] = payment_method.customer_id
        post["mandateId"] = payment_method.mandate_id

        self._add_urls(post, options)

    def _add_klarna_lines(self, post: Dict[str, Any], options: PaymentOptions) -> None:
        currency = options.currency or self.default_currency
        post["lines"] = [self._build_line(item, currency) for item in options.order_line_items]

    def _build_line(self, item: OrderLineItem, currency: str) -> Dict[str, Any]:
        return {
            "description": item.name,
            "quantity": int(item.quantity),
            "unitPrice": {
                "currency": currency,
                "value": self._format_decimal(item.price),
            },
            "totalAmount": {
                "currency": currency,
                "value": self._format_decimal(item.final_amount),
            },
            "vatRate": item.vat_rate or "0.00",
            "vatAmount": {
                "currency": currency,
                "value": item.vat_amount or "0.00",
            },
            "type": item.type or "physical",
        }

    def _add_refund_data(self, post: Dict[str, Any], amount: int, options: PaymentOptions) -> None:
        post["amount"] = self._format_amount(amount, options.currency)
        post["description"] = f"Order #{self._order_reference(options)} Refund at {int(time.time())}"
        post["metadata"] = {
            "refund_reference": f"refund-{self._order_reference(options)}-{secrets.token_hex(4)}",
        }

    def _add_urls(self, post: Dict[str, Any], options: PaymentOptions) -> None:
        links = options.redirect_links
        post["redirectUrl"] = links.success_url if links else None
        post["webhookUrl"] = options.webhook_url or self.webhook_url
        post["cancelUrl"] = links.failure_url if links else None

    def _add_payment_token(self, post: Dict[str, Any], payment_method: PaymentMethod) -> None:
        method = str(post.get("method") or "").lower()
        if method in REDIRECT_ONLY_METHODS:
            return

        token = payment_method.token
        if not token:
            return

        token_field = TOKEN_FIELDS.get(method)
        if token_field:
            post[token_field] = token

    def _add_addresses(self, post: Dict[str, Any], options: PaymentOptions) -> None:
        post["billingAddress"] = self._build_address(options.billing_address, options.email)
        post["shippingAddress"] = self._build_address(options.shipping_address)

    def _build_address(self, data: Optional[Address], email: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if data is None or data.is_blank():
            return None

        given_name, family_name = self._split_names(data.name)

        address = {
            "title": data.title,
            "givenName": given_name,
            "familyName": family_name,
            "organizationName": data.company,
            "streetAndNumber": data.address1,
            "streetAdditional": data.address2,
            "postalCode": data.zip,
            "city": data.city,
            "region": data.state,
            "country": data.country,
            "phone": data.phone,
            "email": email,
        }
        return {key: value for key, value in address.items() if value is not None}

    def _split_names(self, name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        if not name or not name.strip():
            return None, None

        parts = name.split()
        return parts[0], " ".join(parts[1:]) or None

    def _order_reference(self, options: PaymentOptions) -> str:
        return "" if options.order_id is None else str(options.order_id)

    def _format_amount(self, amount: int, currency: Optional[str] = None) -> Dict[str, str]:
        value = (Decimal(amount) / 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        return {
            "currency": currency or self.default_currency,
            "value": f"{value:.2f}",
        }

    def _format_decimal(self, value: Union[str, float, int, Decimal]) -> str:
        return f"{Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP):.2f}"

    # Transport and response normalization

    def _build_request_url(self, endpoint: str) -> str:
        return f"{self.api_url}/{endpoint}"

    def _build_payload(self, post: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in post.items() if value is not None}

    async def _commit(
        self,
        endpoint: str,
        post: Optional[Dict[str, Any]] = None,
        method: str = "POST",
    ) -> GatewayResponse:
        """
        Send one request and normalize the outcome.

        Provider error statuses become a failed GatewayResponse; transport
        failures raise PaymentError.
        """
        request_url = self._build_request_url(endpoint)
        payload = self._build_payload(post) if post is not None else None

        kwargs: Dict[str, Any] = {}
        if payload is not None:
            kwargs["json"] = payload

        logger.info(f"Mollie request {method} {endpoint}")

        try:
            async with self.session.request(method, request_url, **kwargs) as response:
                status_code = response.status
                body = await response.read()
                reason = response.reason
        except asyncio.TimeoutError as e:
            logger.error(f"Mollie request timed out in {method} {endpoint}")
            raise PaymentError(
                message=f"Mollie request timed out after {self._timeout.total}s",
                error_code="timeout",
                provider="mollie",
            ) from e
        except aiohttp.ClientError as e:
            logger.error(f"Mollie API error in {method} {endpoint}: {e}")
            raise PaymentError(
                message=f"Failed to reach Mollie: {str(e)}",
                error_code="api_error",
                provider="mollie",
            )

        if status_code >= 400:
            return self._handle_error_response(status_code, body, reason)

        parsed = self._parse(body, status_code)
        succeeded = self._success_from(parsed, status_code, method)
        message = self._message_from(parsed, status_code, method)

        result = GatewayResponse(
            success=succeeded,
            message=message,
            params=parsed,
            authorization=self._authorization_from(parsed),
            test=self._test_from(parsed),
            error_code=self._error_code_from(succeeded, parsed),
            response_type=self._response_type_from(parsed),
            response_http_code=status_code,
            request_endpoint=request_url,
            request_method=method.lower(),
            request_body=payload,
            soft_decline=self._soft_decline_from(parsed),
        )

        logger.info(
            f"Mollie response for {method} {endpoint}: {message}",
            success=succeeded,
            authorization=result.authorization,
            http_code=status_code,
        )
        return result

    def _parse(self, body: bytes, status_code: int) -> Dict[str, Any]:
        if status_code == 204 or not body:
            return {}

        try:
            parsed = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Invalid JSON in Mollie response: {e}")
            raise PaymentError(
                message=f"Invalid JSON response from Mollie: {str(e)}",
                error_code="invalid_response",
                provider="mollie",
                gateway_response={"body": body.decode("utf-8", errors="replace")},
            )

        if not isinstance(parsed, dict):
            raise PaymentError(
                message="Unexpected response shape from Mollie",
                error_code="invalid_response",
                provider="mollie",
                gateway_response={"body": parsed},
            )
        return parsed

    def _success_from(self, response: Dict[str, Any], status_code: int, method: str) -> bool:
        if method == "DELETE" and status_code == 204:
            return True

        return response.get("resource") == "customer" or response.get("status") in SUCCESS_STATUSES

    def _message_from(self, response: Dict[str, Any], status_code: int, method: str) -> str:
        resource_type = response.get("resource")
        status = response.get("status")

        if method == "DELETE" and status_code == 204:
            return "Mandate revoked"
        if resource_type == "customer":
            return "Customer created"
        if status == "open" or (resource_type == "refund" and status == "pending"):
            return "Pending"
        if status in SUCCESS_STATUSES:
            return "Success"

        return status or "failed"

    def _error_code_from(self, succeeded: bool, response: Dict[str, Any]) -> Optional[str]:
        if succeeded or response.get("status") == "open":
            return None

        return response.get("status")

    def _authorization_from(self, response: Dict[str, Any]) -> Optional[str]:
        return response.get("id")

    def _test_from(self, response: Dict[str, Any]) -> bool:
        return response.get("mode") == "test"

    def _response_type_from(self, response: Dict[str, Any]) -> Optional[str]:
        if response.get("sequenceType") != "recurring":
            return None

        status = response.get("status")
        if status == "paid":
            return "success"
        if status in RECURRING_FAILURE_STATUSES:
            return "failed"

        return None

    def _soft_decline_from(self, response: Dict[str, Any]) -> bool:
        details = response.get("details")
        if not isinstance(details, dict):
            return False

        return details.get("failureReason") in SOFT_DECLINE_REASONS

    def _handle_error_response(self, status_code: int, body: bytes, reason: Optional[str]) -> GatewayResponse:
        """Turn a Mollie error status into a failed response."""
        try:
            parsed = json.loads(body.decode("utf-8")) if body else {}
        except (UnicodeDecodeError, json.JSONDecodeError):
            parsed = {}
        if not isinstance(parsed, dict):
            parsed = {}

        detail = parsed.get("detail")
        field = parsed.get("field")
        message = parsed.get("title") or parsed.get("message") or reason or f"HTTP {status_code}"

        full_message = self._build_error_message(status_code, message, detail, field)
        logger.warning(f"Mollie API error: {full_message}")

        return GatewayResponse(
            success=False,
            message=full_message,
            params=parsed,
            error_code=status_code,
            response_http_code=status_code,
        )

    def _build_error_message(
        self,
        error_code: int,
        message: Optional[str],
        detail: Optional[str],
        field: Optional[str],
    ) -> str:
        components = [f"Failed with {error_code}", message, detail]
        if field:
            components.append(f"(field: {field})")

        return ": ".join(str(component) for component in components if component is not None)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
