"""Email delivery via the Resend HTTP API.

Transport contract: ``send_mail(to=..., subject=..., html=...)`` returns
nothing on success and raises TransportError on any failure, so callers can
tell "could not deliver" apart from validation failures.

The sender holds one pooled httpx client for the life of the process. It is
created and closed by the application lifespan.
"""

import html
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx
import structlog

from masar.core.config import Settings
from masar.core.errors import TransportError

logger = structlog.get_logger()

_RESEND_API_URL = "https://api.resend.com/emails"

_OTP_SUBJECT = "Email Verification - Masar"
_RESET_SUBJECT = "Password Reset - Masar"


class EmailSender(Protocol):
    """Interface every email transport implements."""

    async def send_mail(self, *, to: str, subject: str, html: str) -> None:
        """Deliver one HTML email.

        Raises:
            TransportError: If the message could not be handed to the provider.
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


class ResendEmailSender:
    """Send email through Resend.

    Args:
        api_key: Resend API key.
        from_address: Sender address.
        timeout: Per-request timeout in seconds.
        client: Optional preconfigured httpx client (tests inject a
            MockTransport-backed client here).
    """

    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._from_address = from_address
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send_mail(self, *, to: str, subject: str, html: str) -> None:
        """Post one email to Resend.

        Raises:
            TransportError: On connection errors, timeouts, or non-2xx responses.
        """
        try:
            resp = await self._client.post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": self._from_address,
                    "to": to,
                    "subject": subject,
                    "html": html,
                },
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "email_send_failed",
                provider="resend",
                subject=subject,
                error_type=type(exc).__name__,
            )
            raise TransportError() from exc

        logger.info("email_sent", provider="resend", subject=subject)

    async def aclose(self) -> None:
        """Close the pooled HTTP client."""
        await self._client.aclose()


class LoggingEmailSender:
    """Development transport that records the send without delivering.

    Used when no Resend API key is configured outside production. Logs the
    subject only; the body carries codes and links and is never logged.
    """

    async def send_mail(self, *, to: str, subject: str, html: str) -> None:  # noqa: ARG002
        """Log the email instead of sending it."""
        logger.info("email_suppressed", subject=subject, reason="no_api_key")

    async def aclose(self) -> None:
        """Nothing to release."""


def create_email_sender(settings: Settings) -> EmailSender:
    """Build the transport for the current configuration.

    Args:
        settings: Application settings.

    Returns:
        ResendEmailSender when an API key is configured (always in
        production), LoggingEmailSender otherwise.
    """
    api_key = settings.resend_api_key.get_secret_value()
    if api_key or settings.is_production:
        return ResendEmailSender(
            api_key=api_key,
            from_address=settings.email_from,
            timeout=settings.email_timeout_seconds,
        )
    return LoggingEmailSender()


# =============================================================================
# Templates
# =============================================================================


def render_otp_email(*, code: str, display_name: str, ttl_minutes: int) -> tuple[str, str]:
    """Render the email-verification message.

    Args:
        code: The one-time passcode.
        display_name: Recipient's first name (user input; escaped).
        ttl_minutes: Code lifetime shown to the user.

    Returns:
        (subject, html) tuple.
    """
    name = html.escape(display_name or "there")
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="font-size: 24px;">Email Verification</h1>
  <p>Hello {name},</p>
  <p>Thank you for registering with Masar! To complete your registration,
  please use the following verification code:</p>
  <h2 style="font-size: 32px; letter-spacing: 5px;">{html.escape(code)}</h2>
  <p>This code will expire in {ttl_minutes} minutes. If you didn't request
  this verification, please ignore this email.</p>
  <p>Best regards,<br>The Masar Team</p>
</div>
"""
    return _OTP_SUBJECT, body


def build_reset_link(*, base_url: str, token: str, email: str) -> str:
    """Build the frontend password-reset URL with encoded query parameters."""
    params = urlencode({"token": token, "email": email}, quote_via=quote)
    return f"{base_url.rstrip('/')}/reset-password?{params}"


def render_password_reset_email(*, reset_link: str, ttl_minutes: int) -> tuple[str, str]:
    """Render the password-reset message.

    Args:
        reset_link: Full reset URL including token and email.
        ttl_minutes: Link lifetime shown to the user.

    Returns:
        (subject, html) tuple.
    """
    link = html.escape(reset_link, quote=True)
    body = (
        f'<p>Click <a href="{link}">here</a> to reset your password.</p>'
        f"<p>This link expires in {ttl_minutes} minutes. If you didn't request "
        "a password reset, you can safely ignore this email.</p>"
    )
    return _RESET_SUBJECT, body
