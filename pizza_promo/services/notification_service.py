"""
Admin email notifications for wins and claims.

Notifications are side effects: callers spawn them detached and never wait
on the result. SMTP delivery runs in a worker thread so the event loop is
not blocked by the blocking ``smtplib`` client.
"""
import asyncio
from datetime import datetime
from email.message import EmailMessage
import logging
import smtplib
from typing import Optional

from pizza_promo.config import get_settings
from pizza_promo.models.base import GameKey
from pizza_promo.services.coupon_client import CouponIssuanceResult
from pizza_promo.utils.datetime_helpers import isoformat_z

logger = logging.getLogger(__name__)

GAME_TITLES = {
    GameKey.NUMERO_GANADOR: "Número Ganador",
    GameKey.PERFECT_TIMING: "Perfect Timing",
}


class AdminNotifier:
    """Sends short summaries of wins and claims to the admin mailbox."""

    def __init__(self):
        self.settings = get_settings()

    @property
    def configured(self) -> bool:
        return self.settings.smtp_configured

    async def notify_win(
        self,
        game: GameKey,
        attempt_value: int,
        target_value: int,
        locked_until: Optional[datetime],
        forced_reason: Optional[str] = None,
    ) -> bool:
        title = GAME_TITLES.get(game, game.value)
        lines = [
            f"Nuevo ganador en {title}.",
            f"Intento: {attempt_value}",
            f"Objetivo: {target_value}",
            f"Bloqueado hasta: {isoformat_z(locked_until) or '-'}",
        ]
        if forced_reason:
            lines.append(f"Forzado: {forced_reason}")
        return await self._send(f"[{title}] Nuevo ganador", "\n".join(lines))

    async def notify_claim(
        self,
        game: GameKey,
        reference: str,
        contact: Optional[str],
        coupon_result: Optional[CouponIssuanceResult],
    ) -> bool:
        title = GAME_TITLES.get(game, game.value)
        lines = [
            f"Premio reclamado en {title}.",
            f"Referencia: {reference}",
            f"Contacto: {contact or '-'}",
        ]
        if coupon_result and coupon_result.issued and coupon_result.coupon:
            lines.append(f"Cupón: {coupon_result.coupon.code}")
            lines.append(f"Caduca: {isoformat_z(coupon_result.coupon.expires_at) or '-'}")
        elif coupon_result:
            lines.append(f"Cupón NO emitido: {coupon_result.error}")
        return await self._send(f"[{title}] Premio reclamado ({reference})", "\n".join(lines))

    async def _send(self, subject: str, body: str) -> bool:
        if not self.configured:
            logger.debug(f"SMTP not configured, skipping notification: {subject}")
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.settings.smtp_from or self.settings.smtp_user
        message["To"] = self.settings.admin_email
        message.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send admin notification '{subject}': {e}")
            return False

        logger.info(f"Admin notification sent: {subject}")
        return True

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(
            self.settings.smtp_host,
            self.settings.smtp_port,
            timeout=self.settings.smtp_timeout_seconds,
        ) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_user:
                smtp.login(self.settings.smtp_user, self.settings.smtp_password)
            smtp.send_message(message)


# Singleton instance
_admin_notifier: AdminNotifier | None = None


def get_admin_notifier() -> AdminNotifier:
    """Get singleton admin notifier instance."""
    global _admin_notifier
    if _admin_notifier is None:
        _admin_notifier = AdminNotifier()
    return _admin_notifier
