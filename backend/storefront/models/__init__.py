from .users import UserTier, User, UserTierHistory, PointHistory
from .catalog import Product, InventoryHistory, CartItem
from .coupons import Coupon, UserCoupon, DISCOUNT_TYPE_FIXED, DISCOUNT_TYPE_PERCENT
from .orders import Order, OrderItem, OrderStatus, OrderItemStatus, PaymentMethod

__all__ = [
    "UserTier",
    "User",
    "UserTierHistory",
    "PointHistory",
    "Product",
    "InventoryHistory",
    "CartItem",
    "Coupon",
    "UserCoupon",
    "DISCOUNT_TYPE_FIXED",
    "DISCOUNT_TYPE_PERCENT",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderItemStatus",
    "PaymentMethod",
]
