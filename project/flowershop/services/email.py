# flowershop/services/email.py

"""
Транзакционные письма покупателям через Resend.

Ни один метод не пробрасывает исключения наружу: письмо: вторичное
действие, оно не должно ломать запись заказа или выдачу кода.
"""

import re
from dataclasses import dataclass
from html import escape
from typing import Optional
from urllib.parse import urlencode

import resend
from fastapi.concurrency import run_in_threadpool

from flowershop.config import settings
from flowershop.utils.log import Log

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

OTP_SUBJECTS = {
    "login": "Giriş doğrulama kodunuz",
    "register": "Üyelik doğrulama kodunuz",
    "password-reset": "Şifre sıfırlama kodunuz",
}

STATUS_SUBJECTS = {
    "confirmed": "Siparişiniz onaylandı",
    "processing": "Siparişiniz hazırlanıyor",
    "shipped": "Siparişiniz yola çıktı",
    "delivered": "Siparişiniz teslim edildi",
    "cancelled": "Siparişiniz iptal edildi",
    "refunded": "İade işleminiz tamamlandı",
}

STATUS_TEXTS = {
    "confirmed": "Ödemeniz alındı, siparişiniz teslimat gününü bekliyor.",
    "processing": "Çiçekleriniz özenle hazırlanıyor.",
    "shipped": "Siparişiniz kuryemize teslim edildi ve yola çıktı.",
    "delivered": "Siparişiniz alıcısına teslim edildi. Bizi tercih ettiğiniz için teşekkürler!",
    "cancelled": "Siparişiniz iptal edildi. Sorularınız için bizimle iletişime geçebilirsiniz.",
    "refunded": "İade işleminiz tamamlandı.",
}


@dataclass
class EmailSendResult:
    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None   # INVALID_EMAIL / NOT_CONFIGURED / PROVIDER_ERROR
    message_id: Optional[str] = None


class EmailService:
    def __init__(self, log: Log | None = None, api_key: str | None = None, sender: str | None = None):
        self.log = log or Log()
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.sender = sender or settings.EMAIL_FROM

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    # ==========================================================
    # ОТПРАВКА
    # ==========================================================
    def _send_sync(self, payload: dict) -> dict:
        resend.api_key = self.api_key
        return resend.Emails.send(payload)

    async def send(self, to: str, subject: str, html: str, text: str = "") -> EmailSendResult:
        if not to or not EMAIL_RE.match(to):
            await self.log.log_warning("email", "Некорректный адрес получателя", {"to": to})
            return EmailSendResult(False, "Geçersiz e-posta adresi", "INVALID_EMAIL")

        if not self.api_key:
            await self.log.log_warning("email", "RESEND_API_KEY не задан, письмо не отправлено", {"to": to, "subject": subject})
            return EmailSendResult(False, "E-posta servisi yapılandırılmamış", "NOT_CONFIGURED")

        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text

        try:
            response = await run_in_threadpool(self._send_sync, payload)
        except Exception as e:
            await self.log.log_error("email", f"Ошибка Resend: {e}", {"to": to, "subject": subject})
            return EmailSendResult(False, str(e), "PROVIDER_ERROR")

        message_id = response.get("id") if isinstance(response, dict) else None
        if not message_id:
            await self.log.log_error("email", "Resend не вернул id письма", {"response": str(response)})
            return EmailSendResult(False, str(response), "PROVIDER_ERROR")

        await self.log.log_info("email", "Письмо отправлено", {"to": to, "subject": subject, "id": message_id})
        return EmailSendResult(True, message_id=message_id)

    # ==========================================================
    # ШАБЛОНЫ
    # ==========================================================
    @staticmethod
    def tracking_url(order_number: str, email: str = "") -> str:
        params = {"order": order_number}
        if email:
            params.update({"vtype": "email", "v": email})
        return f"{settings.SITE_URL.rstrip('/')}/siparis-takip?{urlencode(params)}"

    @staticmethod
    def _layout(title: str, body: str) -> str:
        return (
            "<div style=\"font-family:Arial,sans-serif;max-width:560px;margin:auto\">"
            f"<h2 style=\"color:#b0306b\">{escape(title)}</h2>{body}"
            "<p style=\"color:#888;font-size:12px\">Vadiler Çiçek</p></div>"
        )

    @staticmethod
    def _items_table(items: list[dict]) -> str:
        rows = "".join(
            f"<tr><td>{escape(str(i.get('name', '')))}</td>"
            f"<td>{int(i.get('quantity') or 0)}</td>"
            f"<td>₺{float(i.get('price') or 0):.2f}</td></tr>"
            for i in items
        )
        return f"<table width=\"100%\">{rows}</table>"

    async def send_customer_otp(self, to: str, code: str, purpose: str) -> EmailSendResult:
        subject = OTP_SUBJECTS.get(purpose, "Doğrulama kodunuz")
        html = self._layout(
            subject,
            f"<p>Doğrulama kodunuz:</p><p style=\"font-size:28px;letter-spacing:6px\"><b>{escape(code)}</b></p>"
            "<p>Kod 10 dakika geçerlidir. Bu isteği siz yapmadıysanız bu e-postayı dikkate almayın.</p>",
        )
        return await self.send(to, subject, html, f"Doğrulama kodunuz: {code}")

    async def send_order_status_update(
        self,
        customer_email: str,
        customer_name: str,
        order_number: str,
        status: str,
        delivery_date: str = "",
        delivery_time: str = "",
        recipient_name: str = "",
        refund_amount: float | None = None,
        refund_reason: str = "",
        **_,
    ) -> bool:
        subject = f"{STATUS_SUBJECTS.get(status, 'Sipariş durumu güncellendi')} - #{order_number}"
        body = (
            f"<p>Merhaba {escape(customer_name or 'Değerli Müşterimiz')},</p>"
            f"<p>{escape(STATUS_TEXTS.get(status, status))}</p>"
        )
        if delivery_date:
            body += f"<p>Teslimat: {escape(delivery_date)} {escape(delivery_time)}</p>"
        if recipient_name:
            body += f"<p>Alıcı: {escape(recipient_name)}</p>"
        if refund_amount is not None:
            body += f"<p>İade tutarı: ₺{refund_amount:.2f}<br>Sebep: {escape(refund_reason)}</p>"
        body += f"<p><a href=\"{self.tracking_url(order_number, customer_email)}\">Siparişimi takip et</a></p>"

        result = await self.send(customer_email, subject, self._layout(subject, body))
        return result.success

    async def send_order_confirmation(
        self,
        customer_email: str,
        customer_name: str,
        order_number: str,
        items: list[dict],
        total: float,
        delivery_date: str = "",
        delivery_time: str = "",
        **_,
    ) -> bool:
        subject = f"Siparişiniz alındı - #{order_number}"
        body = (
            f"<p>Merhaba {escape(customer_name or 'Değerli Müşterimiz')},</p>"
            "<p>Siparişiniz için teşekkür ederiz.</p>"
            f"{self._items_table(items)}<p><b>Toplam: ₺{total:.2f}</b></p>"
            f"<p>Teslimat: {escape(delivery_date)} {escape(delivery_time)}</p>"
            f"<p><a href=\"{self.tracking_url(order_number, customer_email)}\">Siparişimi takip et</a></p>"
        )
        result = await self.send(customer_email, subject, self._layout(subject, body))
        return result.success

    async def send_bank_transfer_confirmation(
        self,
        customer_email: str,
        customer_name: str,
        order_number: str,
        items: list[dict],
        total: float,
        **kwargs,
    ) -> bool:
        subject = f"Havale/EFT bilgileri - #{order_number}"
        body = (
            f"<p>Merhaba {escape(customer_name or 'Değerli Müşterimiz')},</p>"
            f"<p>Siparişiniz oluşturuldu. Lütfen ₺{total:.2f} tutarını açıklama kısmına "
            f"<b>{escape(order_number)}</b> yazarak havale/EFT ile gönderin.</p>"
            f"{self._items_table(items)}"
        )
        result = await self.send(customer_email, subject, self._layout(subject, body))
        return result.success
