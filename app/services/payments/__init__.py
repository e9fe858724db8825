"""
支付渠道网关
"""

from .stripe_gateway import StripeGateway, stripe_gateway
from .razorpay_gateway import RazorpayGateway, razorpay_gateway, compute_signature

__all__ = [
    "StripeGateway",
    "stripe_gateway",
    "RazorpayGateway",
    "razorpay_gateway",
    "compute_signature"
]
