"""New-order notifications: merchant/buyer email and a Discord summary.

Both channels are best effort. Callers decide what a failure means; nothing
here retries.
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

def format_total(total: Optional[int]) -> str:
    """Minor currency units to ``$12.34``."""
    return f"${(total or 0) / 100:.2f}"

def item_titles(data: Dict[str, Any]) -> List[str]:
    return [item['title'] for item in data.get('items') or [] if item.get('title')]

class EmailNotifier:
    """SMTP delivery of new-order emails."""

    def __init__(self, settings: Dict[str, Any]):
        self._settings = settings

    def _ready(self) -> bool:
        settings = self._settings
        return bool(settings.get('smtp_host') and settings.get('smtp_from'))

    def _recipients(self, shop_config: Dict[str, Any], data: Dict[str, Any]) -> List[str]:
        recipients = [
            shop_config.get('supportEmail'),
            (data.get('userInfo') or {}).get('email'),
        ]
        return sorted({email.strip() for email in recipients if email and email.strip()})

    def build_message(self, shop: Dict[str, Any], data: Dict[str, Any],
                      recipients: Sequence[str]) -> EmailMessage:
        lines = [
            f"Order: {data.get('offerId')}",
            f"Shop: {shop.get('name')}",
            f"Total: {format_total(data.get('total'))}",
        ]
        payment_method = data.get('paymentMethod') or {}
        if payment_method.get('label'):
            lines.append(f"Payment: {payment_method['label']}")
        lines.append("")
        lines.extend(f"- {title}" for title in item_titles(data))

        message = EmailMessage()
        message["Subject"] = f"[{shop.get('name')}] Order #{data.get('offerId')}"
        message["From"] = formataddr((shop.get('name') or 'Dshop', self._settings['smtp_from']))
        message["To"] = ", ".join(recipients)
        message.set_content("\n".join(lines))
        return message

    async def send_new_order(self, shop: Dict[str, Any], shop_config: Dict[str, Any],
                             data: Dict[str, Any], network: Optional[Dict[str, Any]] = None) -> bool:
        """Email the merchant and the buyer about a new order.

        Returns:
            False when SMTP or recipients are not configured, True once sent

        Raises:
            smtplib.SMTPException, OSError: On delivery failure
        """
        if not self._ready():
            logger.warning(f"SMTP configuration incomplete; new order email skipped for {data.get('offerId')}")
            return False

        recipients = self._recipients(shop_config, data)
        if not recipients:
            logger.warning(f"No recipients for order {data.get('offerId')}; skipping email")
            return False

        message = self.build_message(shop, data, recipients)
        await asyncio.to_thread(self._send_sync, message)
        logger.info(f"New order email sent to {message['To']}")
        return True

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        smtp = smtplib.SMTP(host=settings['smtp_host'], port=settings['smtp_port'], timeout=30)
        try:
            if settings.get('smtp_use_tls'):
                smtp.starttls()
            if settings.get('smtp_username'):
                smtp.login(settings['smtp_username'], settings['smtp_password'])
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()

class DiscordNotifier:
    """Posts order summaries to a Discord webhook."""

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, url: str, payload: Dict[str, Any]) -> None:
        response = self.session.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    async def send_new_order(self, url: str, order_id: str, shop_name: str,
                             total: str, items: List[str]) -> None:
        """Post a new order summary.

        Raises:
            requests.RequestException: If the webhook call fails
        """
        lines = [f"**New order {order_id}** on {shop_name}: {total}"]
        lines.extend(f"- {title}" for title in items)
        await asyncio.to_thread(self._post, url, {'content': "\n".join(lines)})
        logger.info(f"Discord notified of order {order_id}")

__all__ = ['EmailNotifier', 'DiscordNotifier', 'format_total', 'item_titles']
