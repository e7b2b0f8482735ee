# src/services/email_service.py
"""
Transactional email through Resend.

Every send returns ``{"success": bool, "error": str | None, "email_id": str | None}``
and never raises; callers decide what a failed delivery means for them.
"""
import html
import logging
import os
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import resend

logger = logging.getLogger(__name__)

BRAND_COLOR = "#056DBA"


def _layout(title: str, body_html: str) -> str:
    year = datetime.utcnow().year
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"><title>{title}</title></head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, {BRAND_COLOR} 0%, #0ea5e9 100%); padding: 30px; text-align: center; border-radius: 8px 8px 0 0;">
    <h1 style="color: white; margin: 0; font-size: 28px;">LinkTherapy</h1>
  </div>
  <div style="background: #ffffff; padding: 40px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 8px 8px;">
    {body_html}
  </div>
  <div style="text-align: center; margin-top: 20px; color: #9ca3af; font-size: 12px;">
    <p>&copy; {year} LinkTherapy. All rights reserved.</p>
  </div>
</body>
</html>"""


def _button(href: str, label: str) -> str:
    return (
        f'<div style="margin: 30px 0;"><a href="{html.escape(href, quote=True)}" '
        f'style="display: inline-block; background: {BRAND_COLOR}; color: white; padding: 14px 28px; '
        f'text-decoration: none; border-radius: 6px; font-weight: 600;">{label}</a></div>'
    )


def _fmt_date(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%B %d, %Y")
    return str(value)


def _fmt_amount(value: Any) -> str:
    return f"${float(value or 0):.2f}"


class EmailService:
    """Thin wrapper over the Resend SDK with the LinkTherapy templates."""

    def __init__(self):
        self.api_key = os.getenv("RESEND_API_KEY", "")
        self.from_email = os.getenv(
            "RESEND_FROM_EMAIL", "LinkTherapy <noreply@linktherapy.org>"
        )
        self.site_url = os.getenv(
            "SITE_URL", os.getenv("NEXT_PUBLIC_SITE_URL", "http://localhost:3000")
        ).rstrip("/")
        if self.api_key:
            resend.api_key = self.api_key
        else:
            logger.warning("⚠️ RESEND_API_KEY not set - emails will not be delivered")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: List[str], subject: str, html_body: str, text_body: str) -> Dict[str, Any]:
        """Send one message. Returns a result dict instead of raising."""
        if not self.configured:
            logger.error(f"❌ Email not sent (Resend not configured): {subject}")
            return {"success": False, "error": "Email service not configured", "email_id": None}

        payload = {
            "from": self.from_email,
            "to": to,
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        try:
            response = resend.Emails.send(payload)
        except Exception as e:
            logger.error(f"❌ Failed to send email '{subject}' to {to}: {str(e)}")
            return {"success": False, "error": str(e) or "Failed to send email", "email_id": None}

        email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"📧 Sent '{subject}' to {to} (id={email_id})")
        return {"success": True, "error": None, "email_id": email_id}

    # -- onboarding ---------------------------------------------------------

    def send_therapist_invite(self, email: str, invite_link: str) -> Dict[str, Any]:
        body = (
            '<h2 style="margin-top: 0;">You\'ve been invited!</h2>'
            "<p>You've been invited to join LinkTherapy as a therapist. "
            "Complete your profile and start connecting with clients.</p>"
            f"{_button(invite_link, 'Accept Invitation')}"
            '<p style="color: #6b7280; font-size: 14px;">If the button doesn\'t work, copy and paste this link into your browser:</p>'
            f'<p style="font-size: 12px; word-break: break-all;">{html.escape(invite_link)}</p>'
            '<p style="color: #6b7280; font-size: 14px;">If you didn\'t expect this invitation, you can safely ignore this email.</p>'
        )
        text = (
            "You've been invited to join LinkTherapy as a therapist.\n\n"
            "Complete your profile and start connecting with clients by clicking the link below:\n\n"
            f"{invite_link}\n\n"
            "If you didn't expect this invitation, you can safely ignore this email."
        )
        return self.send(
            [email],
            "You've been invited to join LinkTherapy",
            _layout("Invitation to LinkTherapy", body),
            text,
        )

    def send_password_reset(self, email: str, reset_link: str) -> Dict[str, Any]:
        body = (
            '<h2 style="margin-top: 0;">Reset your password</h2>'
            "<p>We received a request to reset your LinkTherapy password.</p>"
            f"{_button(reset_link, 'Reset Password')}"
            '<p style="color: #dc2626; font-size: 14px; font-weight: 600;">This link will expire in 1 hour.</p>'
            '<p style="color: #6b7280; font-size: 14px;">If you didn\'t request this, you can ignore this email.</p>'
        )
        text = (
            "We received a request to reset your LinkTherapy password.\n\n"
            f"{reset_link}\n\nThis link will expire in 1 hour."
        )
        return self.send(
            [email], "Reset your LinkTherapy password", _layout("Reset Password", body), text
        )

    # -- leads --------------------------------------------------------------

    def send_contact_request_notification(
        self,
        therapist_email: str,
        client_name: str,
        client_email: str,
        client_phone: Optional[str],
        message: Optional[str],
    ) -> Dict[str, Any]:
        dashboard_url = f"{self.site_url}/dashboard"
        name = html.escape(client_name)
        mail = html.escape(client_email)
        details = [
            f"<p><strong>Client Name:</strong> {name}</p>",
            f'<p><strong>Email:</strong> <a href="mailto:{mail}">{mail}</a></p>',
        ]
        if client_phone:
            phone = html.escape(client_phone)
            details.append(f'<p><strong>Phone:</strong> <a href="tel:{phone}">{phone}</a></p>')
        if message:
            escaped = html.escape(message).replace("\n", "<br>")
            details.append(
                f'<div><strong>Message:</strong><p style="padding: 12px; border-left: 3px solid {BRAND_COLOR};">{escaped}</p></div>'
            )
        body = (
            '<h2 style="margin-top: 0;">New Contact Request</h2>'
            "<p>You have received a new contact request from a potential client.</p>"
            f'<div style="background: #f9fafb; padding: 20px; border-radius: 6px;">{"".join(details)}</div>'
            f"{_button(dashboard_url, 'View in Dashboard')}"
            "<p>Please log in to your dashboard to accept, reject, or schedule a session with this client.</p>"
        )
        text_lines = [
            "New Contact Request",
            "",
            f"Client Name: {client_name}",
            f"Email: {client_email}",
        ]
        if client_phone:
            text_lines.append(f"Phone: {client_phone}")
        if message:
            text_lines += ["", "Message:", message]
        text_lines += ["", dashboard_url]
        return self.send(
            [therapist_email],
            f"New Contact Request from {client_name}",
            _layout("New Contact Request", body),
            "\n".join(text_lines),
        )

    # -- payments -----------------------------------------------------------

    def send_payment_reminder(self, email: str, name: str, amount: Any, due_date: Any) -> Dict[str, Any]:
        body = (
            f"<h2 style=\"margin-top: 0;\">Payment reminder</h2><p>Hi {html.escape(name or '')},</p>"
            f"<p>Your commission payment of <strong>{_fmt_amount(amount)}</strong> is due on "
            f"<strong>{_fmt_date(due_date)}</strong> (in 3 days).</p>"
            f"{_button(self.site_url + '/dashboard', 'Open Dashboard')}"
        )
        text = f"Your commission payment of {_fmt_amount(amount)} is due on {_fmt_date(due_date)}."
        return self.send(
            [email], "Payment reminder: commission due in 3 days", _layout("Payment Reminder", body), text
        )

    def send_payment_deadline(self, email: str, name: str, amount: Any, due_date: Any) -> Dict[str, Any]:
        body = (
            f"<h2 style=\"margin-top: 0;\">Payment due today</h2><p>Hi {html.escape(name or '')},</p>"
            f"<p>Your commission payment of <strong>{_fmt_amount(amount)}</strong> is due today "
            f"({_fmt_date(due_date)}). A 3-day grace period applies before your account is flagged.</p>"
            f"{_button(self.site_url + '/dashboard', 'Open Dashboard')}"
        )
        text = f"Your commission payment of {_fmt_amount(amount)} is due today ({_fmt_date(due_date)})."
        return self.send(
            [email], "Payment due today", _layout("Payment Deadline", body), text
        )

    def send_payment_warning(self, email: str, name: str, amount: Any, due_date: Any) -> Dict[str, Any]:
        body = (
            f"<h2 style=\"margin-top: 0; color: #dc2626;\">Payment overdue</h2><p>Hi {html.escape(name or '')},</p>"
            f"<p>Your commission payment of <strong>{_fmt_amount(amount)}</strong> was due on "
            f"{_fmt_date(due_date)} and is now overdue. Your directory ranking has been reduced.</p>"
            "<p style=\"color: #dc2626; font-weight: 600;\">Your account will be suspended in 3 days "
            "if payment is not received.</p>"
            f"{_button(self.site_url + '/dashboard', 'Pay Now')}"
        )
        text = (
            f"Your commission payment of {_fmt_amount(amount)} was due on {_fmt_date(due_date)} and is overdue. "
            "Your account will be suspended in 3 days if payment is not received."
        )
        return self.send(
            [email], "Warning: payment overdue", _layout("Payment Overdue", body), text
        )

    def send_account_suspended(self, email: str, name: str, amount: Any, due_date: Any) -> Dict[str, Any]:
        body = (
            f"<h2 style=\"margin-top: 0; color: #dc2626;\">Account suspended</h2><p>Hi {html.escape(name or '')},</p>"
            f"<p>Your commission payment of <strong>{_fmt_amount(amount)}</strong> due on "
            f"{_fmt_date(due_date)} was not received. Your profile has been hidden from the directory.</p>"
            "<p>Please contact the LinkTherapy team to settle the balance and reactivate your account.</p>"
        )
        text = (
            f"Your commission payment of {_fmt_amount(amount)} due on {_fmt_date(due_date)} was not received. "
            "Your account has been suspended."
        )
        return self.send(
            [email], "Your LinkTherapy account has been suspended", _layout("Account Suspended", body), text
        )


email_service = EmailService()
