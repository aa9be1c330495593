"""Email transport for verification messages.

Delivery is fire-and-forget from the auth core's point of view: senders
log failures and never raise or retry.
"""

import logging
from datetime import UTC, datetime
from typing import Protocol
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

# Short timeout for mail relay calls so the background task does not linger
_EMAIL_TIMEOUT = 5.0


class EmailSender(Protocol):
    async def send_verification_email(self, address: str, token: str) -> None: ...


def build_verification_link(base_url: str, token: str) -> str:
    """Append the token as a query parameter to the verification endpoint URL."""
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': token})}"


class LoggingEmailSender:
    """Development sender: logs the delivery instead of mailing it.

    The verification link is a bearer credential for the account, so it is
    only written to the log when include_link is set (DEBUG=true).
    """

    def __init__(self, verification_url_base: str, include_link: bool = False):
        self.verification_url_base = verification_url_base
        self.include_link = include_link

    async def send_verification_email(self, address: str, token: str) -> None:
        if not self.include_link:
            logger.info(f"Verification email for {address} not delivered: no mail relay configured")
            return
        link = build_verification_link(self.verification_url_base, token)
        logger.info(f"Verification email for {address}: {link}")


class HttpEmailSender:
    """Posts verification emails to an HTTP mail relay as JSON."""

    def __init__(
        self,
        webhook_url: str,
        verification_url_base: str,
        from_address: str,
        timeout: float = _EMAIL_TIMEOUT,
    ):
        self.webhook_url = webhook_url
        self.verification_url_base = verification_url_base
        self.from_address = from_address
        self.timeout = timeout

    async def send_verification_email(self, address: str, token: str) -> None:
        payload = self._build_payload(address, token)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                if response.status_code >= 400:
                    logger.warning(
                        "Verification email to %s failed: HTTP %d", address, response.status_code
                    )
        except Exception as e:
            logger.warning("Verification email to %s failed: %s", address, e)

    def _build_payload(self, address: str, token: str) -> dict:
        link = build_verification_link(self.verification_url_base, token)
        return {
            "from": self.from_address,
            "to": address,
            "subject": "Please activate your account",
            "text": (
                "Thank you for signing up. "
                f"Please click the link below to activate your account:\n{link}"
            ),
            "timestamp": datetime.now(UTC).isoformat(),
        }
