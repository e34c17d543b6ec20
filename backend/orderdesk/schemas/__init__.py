"""
Pydantic schemas package.
"""
from orderdesk.schemas.offer import (
    CouponValidateRequest,
    CouponValidateResponse,
    DeliveryQuoteRequest,
    DeliveryQuoteResponse,
    OfferAdminResponse,
    OfferCreate,
    OfferResponse,
    OfferUpdate,
)
from orderdesk.schemas.order import (
    CartIn,
    CustomerIn,
    DeliveryAddressIn,
    LineItemIn,
    OrderCreate,
    OrderResponse,
    OrderTrackingResponse,
    PriceBreakdownResponse,
    QuoteResponse,
    StatusUpdate,
)
from orderdesk.schemas.payment import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    ManualVerifyRequest,
    PaymentKeyResponse,
    PaymentProofReview,
    PaymentProofSubmit,
    PaymentStatusResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)
from orderdesk.schemas.settings import (
    FeeConfigResponse,
    FeeConfigUpdate,
    UpiConfigAdminResponse,
    UpiConfigResponse,
    UpiConfigUpdate,
)

__all__ = [
    # Order
    "CartIn",
    "CustomerIn",
    "DeliveryAddressIn",
    "LineItemIn",
    "OrderCreate",
    "OrderResponse",
    "OrderTrackingResponse",
    "PriceBreakdownResponse",
    "QuoteResponse",
    "StatusUpdate",
    # Offer / delivery
    "CouponValidateRequest",
    "CouponValidateResponse",
    "DeliveryQuoteRequest",
    "DeliveryQuoteResponse",
    "OfferAdminResponse",
    "OfferCreate",
    "OfferResponse",
    "OfferUpdate",
    # Payment
    "CreatePaymentRequest",
    "CreatePaymentResponse",
    "ManualVerifyRequest",
    "PaymentKeyResponse",
    "PaymentProofReview",
    "PaymentProofSubmit",
    "PaymentStatusResponse",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "WebhookAck",
    # Settings
    "FeeConfigResponse",
    "FeeConfigUpdate",
    "UpiConfigAdminResponse",
    "UpiConfigResponse",
    "UpiConfigUpdate",
]
