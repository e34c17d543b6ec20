"""
Services package containing pricing, fulfillment and payment logic.
"""
from orderdesk.services.checkout import BuyerInfo, CartSnapshot, CheckoutPricer, FeeSchedule
from orderdesk.services.coupons import CouponResolver
from orderdesk.services.delivery import GeoPoint, quote_delivery
from orderdesk.services.offer_admin import OfferManager
from orderdesk.services.order_lifecycle import OrderLifecycle
from orderdesk.services.payment_reconciler import PaymentReconciler, ReconcilerConfig
from orderdesk.services.pricing import price_order
from orderdesk.services.razorpay_client import GatewayError, PaymentGateway, RazorpayClient
from orderdesk.services.store_settings import FeeConfig, StoreSettingsService, UpiConfig

__all__ = [
    "BuyerInfo",
    "CartSnapshot",
    "CheckoutPricer",
    "CouponResolver",
    "FeeConfig",
    "FeeSchedule",
    "GatewayError",
    "GeoPoint",
    "OfferManager",
    "OrderLifecycle",
    "PaymentGateway",
    "PaymentReconciler",
    "RazorpayClient",
    "ReconcilerConfig",
    "StoreSettingsService",
    "UpiConfig",
    "price_order",
    "quote_delivery",
]
