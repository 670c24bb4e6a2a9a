"""Localized SMS and email bodies for the service lifecycle notifications.

Spanish is the company's default language; unknown language tags fall
back to it.
"""

from __future__ import annotations

from html import escape
from typing import Optional

DEFAULT_LANGUAGE = "es"

_CONFIRM_SMS = {
    "es": "¡Hola {name}! Tu servicio de {service} ha sido confirmado para el {date} a las {time}. Ubicación: {location}. - DroneGarden",
    "en": "Hi {name}! Your {service} service has been confirmed for {date} at {time}. Location: {location}. - DroneGarden",
    "pl": "Cześć {name}! Twoja usługa {service} została potwierdzona na {date} o {time}. Lokalizacja: {location}. - DroneGarden",
}

_COMPLETE_SMS = {
    "es": "¡Hola {name}! Tu servicio de {service} ha sido completado con éxito. ¡Gracias por confiar en DroneGarden! Si tienes alguna pregunta, no dudes en contactarnos.",
    "en": "Hi {name}! Your {service} service has been successfully completed. Thank you for trusting DroneGarden! If you have any questions, don't hesitate to contact us.",
    "pl": "Cześć {name}! Twoja usługa {service} została pomyślnie zakończona. Dziękujemy za zaufanie DroneGarden! Jeśli masz pytania, skontaktuj się z nami.",
}

_CONFIRM_SUBJECT = {
    "es": "✅ Confirmación de Servicio - DroneGarden",
    "en": "✅ Service Confirmation - DroneGarden",
    "pl": "✅ Potwierdzenie Usługi - DroneGarden",
}

_COMPLETE_SUBJECT = {
    "es": "✅ Servicio Completado - DroneGarden",
    "en": "✅ Service Completed - DroneGarden",
    "pl": "✅ Usługa Zakończona - DroneGarden",
}

# greeting, intro, labels (service, date, time, location, area), area unit, closing
_CONFIRM_HTML_TEXT = {
    "es": ("¡Hola {name}!", "Tu servicio ha sido <strong>confirmado</strong>. Aquí están los detalles:",
           ("Servicio", "Fecha", "Hora", "Ubicación", "Área"), "hectáreas", "¡Gracias por confiar en DroneGarden!"),
    "en": ("Hello {name}!", "Your service has been <strong>confirmed</strong>. Here are the details:",
           ("Service", "Date", "Time", "Location", "Area"), "hectares", "Thank you for trusting DroneGarden!"),
    "pl": ("Cześć {name}!", "Twoja usługa została <strong>potwierdzona</strong>. Oto szczegóły:",
           ("Usługa", "Data", "Godzina", "Lokalizacja", "Powierzchnia"), "hektarów", "Dziękujemy za zaufanie DroneGarden!"),
}

_COMPLETE_HTML_TEXT = {
    "es": ("¡Servicio Completado!", "Hola <strong>{name}</strong>, tu servicio de <strong>{service}</strong> ha sido completado con éxito.",
           "¡Gracias por confiar en DroneGarden!"),
    "en": ("Service Completed!", "Hello <strong>{name}</strong>, your <strong>{service}</strong> service has been successfully completed.",
           "Thank you for trusting DroneGarden!"),
    "pl": ("Usługa Zakończona!", "Cześć <strong>{name}</strong>, Twoja usługa <strong>{service}</strong> została pomyślnie zakończona.",
           "Dziękujemy za zaufanie DroneGarden!"),
}

_RESET_SUBJECT = {
    "es": "Restablecer contraseña - DroneGarden",
    "en": "Reset your password - DroneGarden",
    "pl": "Resetowanie hasła - DroneGarden",
}


def _pick(table: dict, language: Optional[str]):
    return table.get(language or DEFAULT_LANGUAGE) or table[DEFAULT_LANGUAGE]


def _wrap(inner: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 32px;">'
        '<h1 style="color: #10b981;">DroneGarden</h1>'
        f"{inner}</div>"
    )


def confirmation_sms(language, name, service, date, time, location) -> str:
    return _pick(_CONFIRM_SMS, language).format(name=name, service=service, date=date, time=time, location=location)


def completion_sms(language, name, service) -> str:
    return _pick(_COMPLETE_SMS, language).format(name=name, service=service)


def confirmation_email(language, name, service, date, time, location, area=None) -> tuple[str, str]:
    """Return `(subject, html)` for a confirmed service."""
    greeting, intro, labels, unit, closing = _pick(_CONFIRM_HTML_TEXT, language)
    values = [service, date, time, location]
    rows = "".join(
        f"<tr><td>{label}:</td><td><strong>{escape(str(value))}</strong></td></tr>"
        for label, value in zip(labels, values)
    )
    if area:
        rows += f"<tr><td>{labels[4]}:</td><td><strong>{escape(str(area))} {unit}</strong></td></tr>"
    html = _wrap(
        f"<h2>{greeting.format(name=escape(name))}</h2><p>{intro}</p><table>{rows}</table><p>{closing}</p>"
    )
    return _pick(_CONFIRM_SUBJECT, language), html


def completion_email(language, name, service) -> tuple[str, str]:
    title, body, closing = _pick(_COMPLETE_HTML_TEXT, language)
    html = _wrap(f"<h2>{title}</h2><p>{body.format(name=escape(name), service=escape(service))}</p><p>{closing}</p>")
    return _pick(_COMPLETE_SUBJECT, language), html


def password_reset_email(language, reset_link: str) -> tuple[str, str]:
    link = escape(reset_link, quote=True)
    html = _wrap(f'<p><a href="{link}">{link}</a></p>')
    return _pick(_RESET_SUBJECT, language), html
