"""
Notification Service for investor-facing tender offer notices.

Channels:
- Email over SMTP (when SMTP_HOST and MAIL_FROM are configured)
- Log only (fallback, and what tests and local runs use)

Delivery problems are logged and reported in the result; they never
propagate to the caller.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from equity_settlement.core.config import settings

logger = logging.getLogger(__name__)


def format_cents(cents: Optional[int]) -> str:
    if cents is None:
        return "-"
    return f"${cents / 100:,.2f}"


class NotificationService:
    """Sends tender offer notices to investors."""

    def __init__(self):
        self.email_enabled = bool(settings.SMTP_HOST and settings.MAIL_FROM)

        if self.email_enabled:
            logger.info("Notification channels enabled: Email")
        else:
            logger.warning("No notification channels configured. Set SMTP_HOST and MAIL_FROM to enable email.")

    def tender_offer_opened(self, company_investor, tender_offer) -> Dict[str, Any]:
        """Tell an invited investor that a tender offer is accepting bids."""
        subject = f"{tender_offer.company.name} is buying back shares: {tender_offer.name}"
        body = (
            f"Hi {company_investor.user.legal_name or company_investor.user.email},\n\n"
            f"{tender_offer.company.name} has opened a tender offer, \"{tender_offer.name}\".\n"
            f"Bids are accepted from {tender_offer.starts_at:%b %d, %Y} "
            f"until {tender_offer.ends_at:%b %d, %Y}.\n"
            f"Minimum price per share: {format_cents(tender_offer.minimum_share_price_cents)}\n"
        )
        return self._deliver(company_investor, subject, body, kind="tender_offer_opened")

    def tender_offer_closed(self, company_investor, tender_offer) -> Dict[str, Any]:
        """Tell a bidding investor that a tender offer has been settled."""
        subject = f"{tender_offer.name} has closed"
        body = (
            f"Hi {company_investor.user.legal_name or company_investor.user.email},\n\n"
            f"The tender offer \"{tender_offer.name}\" from {tender_offer.company.name} has closed.\n"
            f"All accepted bids cleared at {format_cents(tender_offer.accepted_price_cents)} per share.\n"
            f"You can review your accepted shares on your equity dashboard.\n"
        )
        return self._deliver(company_investor, subject, body, kind="tender_offer_closed")

    def _deliver(self, company_investor, subject: str, body: str, kind: str) -> Dict[str, Any]:
        recipient = company_investor.user.email
        results: Dict[str, Any] = {"kind": kind, "recipient": recipient}

        if self.email_enabled:
            results["email"] = self._send_email(recipient, subject, body)
        else:
            logger.info(f"[NOTIFY] {kind} -> {recipient}: {subject}")
            results["logged"] = True

        return results

    def _send_email(self, recipient: str, subject: str, body: str) -> bool:
        """Send email notification."""
        try:
            msg = MIMEMultipart()
            msg['From'] = settings.MAIL_FROM
            msg['To'] = recipient
            msg['Subject'] = subject

            msg.attach(MIMEText(body, 'plain'))

            server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT or 587)
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(msg)
            server.quit()

            logger.info(f"Email notification sent to {recipient}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email notification to {recipient}: {e}")
            return False


# Global instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create the global notification service instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
