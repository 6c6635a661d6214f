"""
Payment gateway integration modules

Provides adapters for payment processing platforms
with a consistent interface and normalized responses.
"""

from .base import (
    Address,
    CustomerDetails,
    GatewayResponse,
    OrderLineItem,
    PaymentError,
    PaymentGateway,
    PaymentGatewayFactory,
    PaymentGatewayType,
    PaymentMethod,
    PaymentMethodType,
    PaymentOptions,
    RedirectLinks,
    _register_builtin_gateways,
)
from .mollie_adapter import MollieAdapter

_register_builtin_gateways()

__all__ = [
    "Address",
    "CustomerDetails",
    "GatewayResponse",
    "MollieAdapter",
    "OrderLineItem",
    "PaymentError",
    "PaymentGateway",
    "PaymentGatewayFactory",
    "PaymentGatewayType",
    "PaymentMethod",
    "PaymentMethodType",
    "PaymentOptions",
    "RedirectLinks",
]
