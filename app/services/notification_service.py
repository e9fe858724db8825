"""
支付成功通知

通知在后台任务中发送，发送失败只记录日志，不影响支付结果
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Set

import structlog

from app.core.config import settings
from app.models.order import Order

logger = structlog.get_logger()


class EmailSender:
    """SMTP邮件发送（阻塞调用，需在线程中执行）"""

    def send(self, to: str, subject: str, html_content: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.smtp_from
        msg["To"] = to
        msg.attach(MIMEText(html_content, "html"))

        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            server.starttls()
            if settings.smtp_user and settings.smtp_password:
                server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.smtp_from, [to], msg.as_string())


def render_payment_success(order: Order) -> str:
    rows = "".join(
        f"<tr><td>{item.item_name}</td><td>{item.quantity}</td><td>{item.line_total}</td></tr>"
        for item in order.items
    )
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif;">
        <h2>Payment received</h2>
        <p>Thank you! Your payment for order <strong>{order.order_number}</strong> was successful.</p>
        <table>
            <tr><th>Item</th><th>Qty</th><th>Total</th></tr>
            {rows}
        </table>
        <p>Subtotal: {order.subtotal}<br>
        Tax: {order.tax}<br>
        Shipping: {order.shipping}<br>
        Discount: {order.discount}<br>
        <strong>Total: {order.total}</strong></p>
    </body>
    </html>
    """


class PaymentNotifier:
    """尽力而为的异步通知器"""

    def __init__(self, sender: Optional[EmailSender] = None):
        self.sender = sender or EmailSender()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(settings.smtp_host)

    def notify_payment_success(self, order: Order) -> Optional[asyncio.Task]:
        """调度通知，立即返回"""
        if not order.contact_email:
            logger.info("订单无通知邮箱，跳过通知", order_id=order.id)
            return None
        if not self.enabled:
            logger.info("SMTP未配置，跳过通知", order_id=order.id)
            return None

        task = asyncio.create_task(self._send_payment_success(order))
        # 保留引用，防止任务被回收
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send_payment_success(self, order: Order) -> None:
        try:
            await asyncio.to_thread(
                self.sender.send,
                order.contact_email,
                f"Payment confirmed - {order.order_number}",
                render_payment_success(order)
            )
            logger.info("支付成功通知已发送", order_id=order.id)
        except Exception as e:
            logger.error("支付成功通知发送失败", order_id=order.id, error=str(e))

    async def drain(self) -> None:
        """等待未完成的通知（关闭应用时调用）"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


# 全局通知器实例
payment_notifier = PaymentNotifier()
