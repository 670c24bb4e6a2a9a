"""Pydantic request schemas used by the API.

Request bodies keep the camelCase field names the web client sends
(`scheduledDate`, `newPassword`, ...); Python code reads them through
the snake_case attribute names.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Language = Literal["es", "en", "pl", "cs", "sk"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterIn(BaseModel):
    """Payload for registration."""
    email: str
    password: str = Field(min_length=6)
    name: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


class ChangePasswordIn(_CamelModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword", min_length=6)


class ForgotPasswordIn(BaseModel):
    email: str


class ResetPasswordIn(_CamelModel):
    token: str
    new_password: str = Field(alias="newPassword", min_length=6)


class ProfileIn(_CamelModel):
    """Editable profile fields; omitted fields are left untouched."""
    name: Optional[str] = None
    phone: Optional[str] = None
    language: Optional[Language] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None


class ServiceRequestIn(_CamelModel):
    service: str
    scheduled_date: str = Field(alias="scheduledDate")
    scheduled_end_date: Optional[str] = Field(default=None, alias="scheduledEndDate")
    scheduled_time: str = Field(alias="scheduledTime")
    name: str
    email: str
    phone: str
    location: str
    area: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdateIn(BaseModel):
    status: str


class AdminCreateUserIn(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: Optional[str] = None


class AdminPasswordIn(_CamelModel):
    new_password: str = Field(alias="newPassword", min_length=6)


class VonageConfigIn(_CamelModel):
    api_key: str = Field(default="", alias="apiKey")
    api_secret: str = Field(default="", alias="apiSecret")
    from_number: Optional[str] = Field(default=None, alias="fromNumber")


class SmtpConfigIn(_CamelModel):
    host: Optional[str] = None
    port: Optional[int] = None
    user: str = ""
    password: str = Field(default="", alias="pass")
    from_email: Optional[str] = Field(default=None, alias="fromEmail")


class SmsSendIn(_CamelModel):
    to: str = ""
    message: str = ""


class ConfirmServiceIn(_CamelModel):
    """Body of the confirmation notification endpoints.

    SMS only needs `phone`, email only needs `email`; the routes check
    the channel-specific requirements.
    """
    phone: str = ""
    email: str = ""
    client_name: str = Field(default="", alias="clientName")
    service: str = ""
    date: str = ""
    time: str = ""
    location: str = ""
    area: Optional[float] = None
    language: str = "es"


class CompleteServiceIn(_CamelModel):
    phone: str = ""
    email: str = ""
    client_name: str = Field(default="", alias="clientName")
    service: str = ""
    language: str = "es"
