from orderhub.models.product import Product
from orderhub.models.payment_condition import PaymentCondition
from orderhub.models.supplier_condition import SupplierStateCondition
from orderhub.models.campaign import Campaign, CampaignProduct, CampaignType, CampaignScope
from orderhub.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    ORDER_STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
)
from orderhub.models.cashback import (
    CashbackWallet,
    CashbackTransaction,
    CashbackTransactionType,
    CashbackReferenceType,
)

__all__ = [
    "Product",
    "PaymentCondition",
    "SupplierStateCondition",
    "Campaign",
    "CampaignProduct",
    "CampaignType",
    "CampaignScope",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "ORDER_STATUS_TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "CashbackWallet",
    "CashbackTransaction",
    "CashbackTransactionType",
    "CashbackReferenceType",
]
