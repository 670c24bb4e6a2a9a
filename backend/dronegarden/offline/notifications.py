"""SMS + email dispatch for the service confirmation and completion events.

Each event fans out to its SMS and email endpoint concurrently and waits
for both. Channel calls never raise: a failed call becomes
`NotificationResult(success=False, error=...)`, and the caller decides
what to show from the combined `NotificationOutcome`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .api_client import ApiClient

logger = logging.getLogger("dronegarden.offline.notifications")

Language = Literal["es", "en", "pl", "cs", "sk"]


class _Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CompleteServiceParams(_Params):
    phone: str
    email: str
    client_name: str = Field(alias="clientName")
    service: str
    language: Language = "es"


class ConfirmServiceParams(CompleteServiceParams):
    date: str
    time: str
    location: str
    area: Optional[float] = None


class NotificationResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationOutcome(BaseModel):
    sms: NotificationResult
    email: NotificationResult

    @property
    def any_succeeded(self) -> bool:
        """Reaching the client over either channel counts as delivered."""
        return self.sms.success or self.email.success

    @property
    def all_failed(self) -> bool:
        return not self.any_succeeded


def _text(value) -> Optional[str]:
    """Non-empty strings pass through; anything else the backend sent is dropped."""
    return value if isinstance(value, str) and value else None


class NotificationDispatcher:
    def __init__(self, api: ApiClient):
        self.api = api

    async def _post(self, path: str, body: dict, fallback_error: str) -> NotificationResult:
        try:
            response = await self.api.send("POST", path, json=body)
        except httpx.HTTPError as exc:
            logger.error("notification %s failed: %s", path, exc)
            return NotificationResult(success=False, error=str(exc) or fallback_error)
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}
        error = _text(data.get("error"))
        if not response.is_success:
            logger.warning("notification %s rejected (%s): %s", path, response.status_code, data.get("error"))
            return NotificationResult(success=False, error=error or fallback_error)
        success = data.get("success", True) is not False
        try:
            return NotificationResult(
                success=success,
                message_id=_text(data.get("messageId")),
                error=error if success else (error or fallback_error),
            )
        except ValidationError:
            logger.warning("notification %s answered an unexpected body: %r", path, data)
            return NotificationResult(success=False, error=fallback_error)

    async def send_confirmation_sms(self, params: ConfirmServiceParams) -> NotificationResult:
        return await self._post("/sms/confirm-service", params.to_body(), "Failed to send SMS")

    async def send_confirmation_email(self, params: ConfirmServiceParams) -> NotificationResult:
        return await self._post("/email/confirm-service", params.to_body(), "Failed to send email")

    async def send_completion_sms(self, params: CompleteServiceParams) -> NotificationResult:
        return await self._post("/sms/complete-service", params.to_body(), "Failed to send SMS")

    async def send_completion_email(self, params: CompleteServiceParams) -> NotificationResult:
        return await self._post("/email/complete-service", params.to_body(), "Failed to send email")

    async def send_confirmation(self, params: ConfirmServiceParams) -> NotificationOutcome:
        sms, email = await asyncio.gather(
            self.send_confirmation_sms(params),
            self.send_confirmation_email(params),
        )
        return NotificationOutcome(sms=sms, email=email)

    async def send_completion(self, params: CompleteServiceParams) -> NotificationOutcome:
        sms, email = await asyncio.gather(
            self.send_completion_sms(params),
            self.send_completion_email(params),
        )
        return NotificationOutcome(sms=sms, email=email)

    async def check_health(self) -> bool:
        try:
            response = await self.api.send("GET", "/health")
        except httpx.HTTPError:
            return False
        return response.is_success
