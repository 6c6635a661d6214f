"""
Payment Gateway Base Classes and Interfaces

Defines the contract, value types and normalized response shared by the
payment gateway adapters in paybridge.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class PaymentGatewayType(str, Enum):
    """Supported payment gateway types."""
    MOLLIE = "mollie"


class PaymentMethodType(str, Enum):
    """Payment method identifiers as understood by the provider."""
    CREDIT_CARD = "creditcard"
    APPLE_PAY = "applepay"
    GOOGLE_PAY = "googlepay"
    PAYPAL = "paypal"
    KLARNA = "klarna"
    IDEAL = "ideal"
    BANCONTACT = "bancontact"
    BANK_TRANSFER = "banktransfer"
    DIRECT_DEBIT = "directdebit"
    SOFORT = "sofort"


@dataclass
class PaymentMethod:
    """
    Payment instrument details.

    ``customer_id`` and ``mandate_id`` are provider-side references; when
    both are present the instrument can be charged without the shopper.
    """
    type: Union[PaymentMethodType, str]
    token: Optional[str] = None
    customer_id: Optional[str] = None
    mandate_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def method_name(self) -> str:
        if isinstance(self.type, PaymentMethodType):
            return self.type.value
        return str(self.type) if self.type is not None else ""


@dataclass
class Address:
    """Postal address attached to an order."""
    name: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None

    def is_blank(self) -> bool:
        return not any(
            value and str(value).strip() for value in (
                self.name, self.title, self.company, self.address1, self.address2,
                self.zip, self.city, self.state, self.country, self.phone,
            )
        )


@dataclass
class OrderLineItem:
    """Single order line, used by pay-later methods that need a basket."""
    name: str
    price: Union[str, float, int]
    quantity: int
    final_amount: Union[str, float, int]
    vat_rate: Optional[str] = None
    vat_amount: Optional[str] = None
    type: Optional[str] = None

    def __post_init__(self):
        for attribute in ("price", "final_amount"):
            value = getattr(self, attribute)
            try:
                amount = Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"OrderLineItem.{attribute} must be numeric, got {value!r}")
            if not amount.is_finite():
                raise ValueError(f"OrderLineItem.{attribute} must be finite, got {value!r}")

        try:
            int(self.quantity)
        except (TypeError, ValueError):
            raise ValueError(f"OrderLineItem.quantity must be an integer, got {self.quantity!r}")


@dataclass
class RedirectLinks:
    """Where the shopper is sent after a hosted checkout."""
    success_url: Optional[str] = None
    failure_url: Optional[str] = None


@dataclass
class PaymentOptions:
    """Per-call options shared by all gateway operations."""
    order_id: Optional[str] = None
    currency: Optional[str] = None
    email: Optional[str] = None
    locale: Optional[str] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None
    order_line_items: List[OrderLineItem] = field(default_factory=list)
    redirect_links: Optional[RedirectLinks] = None
    webhook_url: Optional[str] = None


@dataclass
class CustomerDetails:
    """Customer information for direct customer registration."""
    email: Optional[str] = None
    name: Optional[str] = None
    locale: Optional[str] = None


@dataclass
class GatewayResponse:
    """
    Normalized result of a single gateway API call.

    ``params`` holds the parsed provider JSON. ``authorization`` is the
    provider reference used by follow-up calls (refund, void).
    """
    success: bool
    message: str
    params: Dict[str, Any] = field(default_factory=dict)
    authorization: Optional[str] = None
    test: bool = False
    error_code: Optional[Union[str, int]] = None
    response_type: Optional[str] = None
    response_http_code: Optional[int] = None
    request_endpoint: Optional[str] = None
    request_method: Optional[str] = None
    request_body: Optional[Dict[str, Any]] = None
    soft_decline: bool = False


class PaymentError(Exception):
    """Payment gateway specific errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        provider: Optional[str] = None,
        gateway_response: Optional[Dict[str, Any]] = None,
        transaction_id: Optional[str] = None
    ):
        super().__init__(message)
        self.error_message = message
        self.error_code = error_code
        self.provider = provider
        self.gateway_response = gateway_response
        self.transaction_id = transaction_id


class PaymentGateway(ABC):
    """Abstract base class for payment gateway adapters."""

    supported_countries: List[str] = []
    default_currency: str = "EUR"
    display_name: str = ""
    homepage_url: str = ""

    def __init__(self, **config):
        """Initialize the payment gateway with configuration."""
        self.config = config
        self.gateway_type = self._get_gateway_type()

    @abstractmethod
    def _get_gateway_type(self) -> PaymentGatewayType:
        """Return the gateway type identifier."""
        pass

    @abstractmethod
    async def purchase(
        self,
        amount: int,
        payment_method: PaymentMethod,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """
        Charge a payment method.

        Args:
            amount: Amount in minor units (cents)
            payment_method: Payment method details
            options: Order, customer and redirect options

        Returns:
            GatewayResponse describing the created payment

        Raises:
            PaymentError: If the gateway cannot be reached
        """
        pass

    async def recurring(
        self,
        amount: int,
        payment_method: PaymentMethod,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """
        Charge a stored mandate without shopper interaction.

        Raises:
            NotImplementedError: If the gateway has no mandate support
        """
        raise NotImplementedError("Recurring charges not implemented for this gateway")

    @abstractmethod
    async def refund(
        self,
        amount: int,
        authorization: str,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """
        Refund a payment.

        Args:
            amount: Amount to refund in minor units
            authorization: Original payment reference
            options: Order options

        Returns:
            GatewayResponse describing the refund

        Raises:
            PaymentError: If the gateway cannot be reached
        """
        pass

    @abstractmethod
    async def void(
        self,
        authorization: str,
        options: Optional[PaymentOptions] = None,
    ) -> GatewayResponse:
        """
        Cancel a payment that has not completed yet.

        Args:
            authorization: Original payment reference
            options: Order options

        Returns:
            GatewayResponse describing the canceled payment
        """
        pass

    @abstractmethod
    async def create_customer(
        self,
        customer: Union[CustomerDetails, PaymentOptions, None] = None,
    ) -> GatewayResponse:
        """
        Create a customer in the payment gateway.

        Args:
            customer: Customer details, or payment options to derive them from

        Returns:
            GatewayResponse whose ``authorization`` is the gateway customer ID
        """
        pass

    async def get_payment_status(self, authorization: str) -> GatewayResponse:
        """
        Get the current state of a payment.

        Raises:
            NotImplementedError: If the gateway has no status endpoint
        """
        raise NotImplementedError("Payment status query not implemented for this gateway")

    async def health_check(self) -> bool:
        """
        Check if the payment gateway is healthy.

        Returns:
            True if gateway is responding correctly
        """
        # Default implementation - override in subclasses
        return True

    def get_supported_currencies(self) -> List[str]:
        """
        Get list of supported currencies.

        Returns:
            List of supported currency codes
        """
        # Default to major currencies - override in subclasses
        return ["USD", "EUR", "GBP"]

    def get_supported_countries(self) -> List[str]:
        """Get list of supported merchant countries (ISO 3166-1 alpha-2)."""
        return list(self.supported_countries)

    def get_supported_payment_methods(self) -> List[PaymentMethodType]:
        """
        Get list of supported payment method types.

        Returns:
            List of supported payment method types
        """
        # Default implementation - override in subclasses
        return [PaymentMethodType.CREDIT_CARD]

    def supports_currency(self, currency: str) -> bool:
        return currency.upper() in self.get_supported_currencies()


class PaymentGatewayFactory:
    """Factory for creating payment gateway instances."""

    _gateways: Dict[PaymentGatewayType, type] = {}

    @classmethod
    def register_gateway(
        cls,
        gateway_type: PaymentGatewayType,
        gateway_class: type
    ):
        """Register a payment gateway implementation."""
        cls._gateways[gateway_type] = gateway_class

    @classmethod
    def create_gateway(
        cls,
        gateway_type: PaymentGatewayType,
        **config
    ) -> PaymentGateway:
        """Create a payment gateway instance."""
        if gateway_type not in cls._gateways:
            raise ValueError(f"Unsupported gateway type: {gateway_type}")

        gateway_class = cls._gateways[gateway_type]
        return gateway_class(**config)

    @classmethod
    def get_supported_gateways(cls) -> List[PaymentGatewayType]:
        """Get list of registered gateway types."""
        return list(cls._gateways.keys())


def _register_builtin_gateways():
    """Register built-in gateway implementations."""
    from .mollie_adapter import MollieAdapter
    PaymentGatewayFactory.register_gateway(PaymentGatewayType.MOLLIE, MollieAdapter)
