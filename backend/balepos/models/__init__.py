from .catalog import Bale, BaleStatus, Product
from .sales import (
    LiveSession,
    Order,
    PaymentMethod,
    PaymentStatus,
    ShippingStatus,
    OFF_LIVE_SESSION,
    OFF_LIVE_SESSION_NAME,
)
from .customers import Customer
from .accounting import Transaction, TransactionType
from .settings import ShopSettings, CartDraft, cart_line_total
from .devices import Device, DeviceStatus
from .sync import MirrorEvent

__all__ = [
    'Bale', 'BaleStatus', 'Product',
    'LiveSession', 'Order', 'PaymentMethod', 'PaymentStatus', 'ShippingStatus',
    'OFF_LIVE_SESSION', 'OFF_LIVE_SESSION_NAME',
    'Customer',
    'Transaction', 'TransactionType',
    'ShopSettings', 'CartDraft', 'cart_line_total',
    'Device', 'DeviceStatus',
    'MirrorEvent',
]
