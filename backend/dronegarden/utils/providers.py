"""Outbound notification providers: Vonage SMS and SMTP email.

Both providers are thin wrappers over the third-party service. They are
built from the admin-editable `ProviderConfig` and raise
`ProviderNotConfigured` when credentials are missing, or `ProviderError`
when the provider call fails. `ProviderError.rejected` distinguishes a
provider that answered with a refusal (bad number, bad credentials) from
a call that failed outright.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

import httpx

from ..config import SmtpConfig, VonageConfig

logger = logging.getLogger("dronegarden.providers")

VONAGE_BASE_URL = "https://rest.nexmo.com"
SENDER_NAME = "DroneGarden"


class ProviderNotConfigured(Exception):
    """Raised when a provider is used before its credentials are saved."""


class ProviderError(Exception):
    def __init__(self, message: str, *, rejected: bool = False):
        super().__init__(message)
        self.rejected = rejected


def clean_phone(phone: str) -> str:
    """Strip whitespace and a leading `+` (Vonage wants bare digits)."""
    return "".join(phone.split()).lstrip("+")


class VonageGateway:
    def __init__(self, config: VonageConfig, http_client: Optional[httpx.Client] = None, timeout: float = 15.0):
        if not config.configured:
            raise ProviderNotConfigured("Vonage SMS not configured")
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(base_url=VONAGE_BASE_URL, timeout=self._timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "VonageGateway":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send_sms(self, to: str, text: str) -> str:
        """Send `text` to `to` and return the Vonage message id."""
        payload = {
            "api_key": self.config.api_key,
            "api_secret": self.config.api_secret,
            "from": self.config.from_number or SENDER_NAME,
            "to": clean_phone(to),
            "text": text,
        }
        try:
            resp = self._http().post("/sms/json", data=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("vonage sms call failed: %s", exc)
            raise ProviderError(f"Failed to send SMS: {exc}") from exc
        messages = body.get("messages") or [{}]
        first = messages[0]
        if str(first.get("status")) != "0":
            error_text = first.get("error-text") or "SMS rejected by provider"
            logger.warning("vonage rejected sms: %s", error_text)
            raise ProviderError(error_text, rejected=True)
        return first.get("message-id", "")

    def get_balance(self) -> float:
        """Fetch the account balance; used to validate credentials."""
        params = {"api_key": self.config.api_key, "api_secret": self.config.api_secret}
        try:
            resp = self._http().get("/account/get-balance", params=params)
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(str(exc)) from exc
        if body.get("value") is None:
            raise ProviderError("Invalid credentials", rejected=True)
        return float(body["value"])


class SmtpMailer:
    def __init__(self, config: SmtpConfig, timeout: float = 30.0):
        if not config.configured:
            raise ProviderNotConfigured("Email SMTP not configured")
        self.config = config
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        host, port = self.config.host, int(self.config.port)
        context = ssl.create_default_context()
        if port == 465:
            server = smtplib.SMTP_SSL(host, port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(host, port, timeout=self.timeout)
            server.starttls(context=context)
        server.login(self.config.user, self.config.password)
        return server

    def verify(self) -> None:
        try:
            server = self._connect()
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("smtp verify failed: %s", exc)
            raise ProviderError(str(exc)) from exc

    def send(self, to: str, subject: str, html: str) -> str:
        """Send an HTML email and return its Message-ID."""
        from_email = self.config.from_email or self.config.user
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((SENDER_NAME, from_email))
        msg["To"] = to
        msg["Message-ID"] = make_msgid(domain=from_email.split("@")[-1] or None)
        msg.attach(MIMEText(html, "html", "utf-8"))
        try:
            server = self._connect()
            try:
                server.sendmail(from_email, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("smtp send to %s failed: %s", to, exc)
            raise ProviderError(f"Failed to send email: {exc}") from exc
        logger.info("email sent to %s (%s)", to, subject)
        return msg["Message-ID"]
