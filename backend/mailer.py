"""
Outgoing mail through the SendGrid v3 HTTP API.
"""
import logging

import requests

import config

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class MailerError(Exception):
    pass


def send_email(to: str, subject: str, html: str, timeout: float = 10.0) -> None:
    if not config.SENDGRID_API_KEY:
        raise MailerError("SENDGRID_API_KEY is not configured")

    payload = {
        "personalizations": [{"to": [{"email": to}]}],
        "from": {"email": config.SENDGRID_FROM_EMAIL},
        "subject": subject,
        "content": [{"type": "text/html", "value": html}],
    }
    try:
        resp = requests.post(
            SENDGRID_URL,
            json=payload,
            headers={"Authorization": f"Bearer {config.SENDGRID_API_KEY}"},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise MailerError(f"Could not reach SendGrid: {e}") from e

    if not resp.ok:
        raise MailerError(f"SendGrid rejected the message ({resp.status_code}): {resp.text[:200]}")
    logger.info(f"Email sent to {to}")


def password_reset_email(reset_token: str) -> str:
    reset_url = f"{config.FRONTEND_URL}/reset-password?token={reset_token}"
    return f"""
    <!DOCTYPE html>
    <html>
      <head><meta charset="utf-8"><title>Password reset</title></head>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
          <h2 style="color: #2c3e50;">{config.RESTAURANT_NAME}</h2>
          <h3 style="color: #34495e;">Password reset</h3>
          <p>You asked to reset your password. Follow the link below to choose a new one:</p>
          <p style="background-color: #f4f4f4; padding: 10px; border-radius: 4px; word-break: break-all;">
            <a href="{reset_url}">{reset_url}</a>
          </p>
          <p style="color: #7f8c8d; font-size: 14px;">
            This link expires in {config.PASSWORD_RESET_EXPIRE_MINUTES} minutes.
            If you did not request it, ignore this email.
          </p>
        </div>
      </body>
    </html>
    """
