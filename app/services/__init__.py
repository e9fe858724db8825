"""
服务包初始化文件
"""

from .common_cache import SimpleCache, order_cache, webhook_event_cache
from .notification_service import PaymentNotifier, payment_notifier

__all__ = [
    "SimpleCache",
    "order_cache",
    "webhook_event_cache",
    "PaymentNotifier",
    "payment_notifier"
]
