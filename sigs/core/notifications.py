from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from urllib.parse import quote
from zoneinfo import ZoneInfo

from flask import current_app

from sigs.core.models import Claim, ClosureKind, Policy
from sigs.core.results import MissingContactError
from sigs.core.utils import as_utc, money


@dataclass(frozen=True)
class Message:
    """A composed notice. Delivery is up to the caller; nothing here touches the network."""

    channel: str
    to: str
    subject: str
    body: str
    url: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return asdict(self)


def clean_phone_number(raw: str | None, country_code: str | None = None) -> str:
    code = country_code if country_code is not None else current_app.config["WHATSAPP_COUNTRY_CODE"]
    digits = re.sub(r"\D", "", raw or "")
    if not digits:
        return ""
    if len(digits) == 8:
        digits = f"{code}{digits}"
    if code and digits.startswith(code * 2):
        digits = digits[len(code) :]
    return digits


def whatsapp_url(phone: str, text: str) -> str:
    return f"https://wa.me/{phone}?text={quote(text)}"


def _local_time(value: datetime) -> str:
    tz = ZoneInfo(current_app.config["NOTIFY_TIMEZONE"])
    return as_utc(value).astimezone(tz).strftime("%d/%m/%Y %H:%M")


def compose_rejection_notice(policy: Policy, reason: str, deadline: datetime) -> Message:
    creator = policy.created_by
    if creator is None or not (creator.email or "").strip():
        raise MissingContactError(f"La poliza {policy.number} no tiene un creador con email")

    agency = current_app.config["AGENCY_NAME"]
    rejected_by = policy.rejected_by.full_name if policy.rejected_by else "-"
    body = "\n".join(
        [
            f"Hola {creator.full_name},",
            "",
            f"La poliza {policy.number} ({policy.client.name}) fue rechazada por {rejected_by}.",
            f"Motivo: {reason}",
            "",
            f"Puedes corregirla y reenviarla hasta el {_local_time(deadline)} "
            f"({current_app.config['NOTIFY_TIMEZONE']}).",
            "",
            agency,
        ]
    )
    return Message(
        channel="email",
        to=creator.email.strip(),
        subject=f"Poliza {policy.number} rechazada",
        body=body,
    )


def _closure_text(claim: Claim, closure_kind: ClosureKind) -> str:
    client = claim.policy.client
    head = f"Estimado/a {client.name}, le informamos sobre el siniestro {claim.code} de su poliza {claim.policy.number}."
    if closure_kind == ClosureKind.RECHAZO:
        detail = f"El siniestro fue rechazado. Motivo: {claim.closure_reason}"
    elif closure_kind == ClosureKind.DECLINACION:
        detail = f"El siniestro fue declinado. Motivo: {claim.closure_reason}"
    else:
        paid = money(claim.paid_amount or 0, claim.currency.value)
        detail = f"El siniestro fue concluido con indemnizacion. Monto pagado: {paid}"
    return f"{head}\n{detail}\n{current_app.config['AGENCY_NAME']}"


def compose_closure_notice(claim: Claim, closure_kind: ClosureKind) -> Message:
    client = claim.policy.client
    text = _closure_text(claim, closure_kind)
    subject = f"Siniestro {claim.code}: cierre"

    phone = clean_phone_number(client.mobile or client.phone)
    if phone:
        return Message(channel="whatsapp", to=phone, subject=subject, body=text, url=whatsapp_url(phone, text))
    if (client.email or "").strip():
        return Message(channel="email", to=client.email.strip(), subject=subject, body=text)
    raise MissingContactError(f"El cliente {client.name} no tiene telefono ni email")
