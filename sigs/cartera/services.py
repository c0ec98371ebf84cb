from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_

from sigs.core.context import ActorContext
from sigs.core.extensions import db
from sigs.core.models import (
    Client,
    ClientHistory,
    ClientType,
    Currency,
    EditGrant,
    GrantKind,
    GrantRevokeReason,
    Policy,
    PolicyHistory,
    PolicyStatus,
    Role,
    User,
)
from sigs.core.notifications import compose_rejection_notice
from sigs.core.permissions import can_manage_owned, can_perform, require_admin, require_permission
from sigs.core.results import (
    ActionResult,
    EditWindowExpired,
    InvalidTransition,
    ListResult,
    MissingContactError,
    NotFound,
    PartialFailure,
    PermissionDenied,
    Unauthenticated,
    ValidationFailed,
    service_boundary,
)
from sigs.core.utils import (
    clamp_page,
    isoformat,
    paginate_query,
    parse_decimal,
    parse_iso_date,
    parse_optional_int,
    utcnow,
)
from sigs.documentos.services import purge_storage_objects

POLICY_TRANSITIONS: dict[PolicyStatus, set[PolicyStatus]] = {
    PolicyStatus.PENDING: {PolicyStatus.ACTIVE, PolicyStatus.REJECTED, PolicyStatus.CANCELLED},
    PolicyStatus.ACTIVE: {PolicyStatus.REJECTED, PolicyStatus.RENEWED, PolicyStatus.CANCELLED},
    PolicyStatus.REJECTED: {PolicyStatus.PENDING},
    PolicyStatus.CANCELLED: set(),
    PolicyStatus.RENEWED: set(),
}

READ_ONLY_STATUSES = {PolicyStatus.CANCELLED, PolicyStatus.RENEWED}

POLICY_EDITABLE_FIELDS = ("number", "ramo", "insurer", "premium", "currency", "valid_from", "valid_to")
CLIENT_EDITABLE_FIELDS = ("client_type", "name", "document_number", "phone", "mobile", "email")


def serialize_client(client: Client) -> dict[str, object]:
    return {
        "id": client.id,
        "client_type": client.client_type.value,
        "name": client.name,
        "document_number": client.document_number,
        "phone": client.phone,
        "mobile": client.mobile,
        "email": client.email,
        "status": client.status,
        "executive_in_charge_id": client.executive_in_charge_id,
        "created_by_user_id": client.created_by_user_id,
        "created_at": isoformat(client.created_at),
    }


def _live_grant(policy: Policy, now: datetime) -> EditGrant | None:
    return next(
        (
            grant
            for grant in reversed(policy.edit_grants)
            if grant.kind == GrantKind.REJECTION and grant.is_live(now)
        ),
        None,
    )


def _live_manual_grant(policy: Policy, user_id: int | None, now: datetime) -> EditGrant | None:
    return next(
        (
            grant
            for grant in policy.edit_grants
            if grant.kind == GrantKind.MANUAL and grant.holder_user_id == user_id and grant.is_live(now)
        ),
        None,
    )


def serialize_policy(policy: Policy, detail: bool = False, now: datetime | None = None) -> dict[str, object]:
    data: dict[str, object] = {
        "id": policy.id,
        "number": policy.number,
        "client": {"id": policy.client_id, "name": policy.client.name if policy.client else None},
        "ramo": policy.ramo,
        "insurer": policy.insurer,
        "status": policy.status.value,
        "responsable_user_id": policy.responsable_user_id,
        "created_by_user_id": policy.created_by_user_id,
        "premium": str(policy.premium),
        "currency": policy.currency.value,
        "valid_from": isoformat(policy.valid_from),
        "valid_to": isoformat(policy.valid_to),
        "validated_by_user_id": policy.validated_by_user_id,
        "validated_at": isoformat(policy.validated_at),
        "rejection_reason": policy.rejection_reason,
        "rejected_by_user_id": policy.rejected_by_user_id,
        "rejected_at": isoformat(policy.rejected_at),
        "renewed_from_id": policy.renewed_from_id,
    }
    if detail:
        grant = _live_grant(policy, now or utcnow())
        data["edit_grant"] = (
            {"holder_user_id": grant.holder_user_id, "expires_at": isoformat(grant.expires_at)} if grant else None
        )
        data["history"] = [
            {
                "action": row.action,
                "from_status": row.from_status,
                "to_status": row.to_status,
                "note": row.note,
                "user_id": row.user_id,
                "created_at": isoformat(row.created_at),
            }
            for row in policy.history
        ]
    return data


def _get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFound("Cliente no encontrado")
    return client


def _get_policy(policy_id: int) -> Policy:
    policy = db.session.get(Policy, policy_id)
    if policy is None:
        raise NotFound("Poliza no encontrada")
    return policy


def _get_user(user_id: int | None, role_label: str = "usuario") -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFound(f"No existe el {role_label} indicado")
    return user


def _parse_enum(enum_cls, value: str | None, field_name: str):
    raw = (value or "").strip().lower()
    for member in enum_cls:
        if member.value.lower() == raw or member.name.lower() == raw:
            return member
    raise ValidationFailed(f"Valor invalido para {field_name}")


def _log_policy_event(
    policy: Policy,
    action: str,
    user_id: int | None,
    from_status: PolicyStatus | None = None,
    to_status: PolicyStatus | None = None,
    note: str = "",
) -> None:
    db.session.add(
        PolicyHistory(
            policy_id=policy.id,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value if to_status else None,
            note=note,
            user_id=user_id,
        )
    )


def _log_client_event(client: Client, action: str, detail: str, user_id: int | None) -> None:
    db.session.add(ClientHistory(client_id=client.id, action=action, detail=detail, user_id=user_id))


def _transition_policy_status(
    policy: Policy,
    new_status: PolicyStatus,
    action: str,
    user_id: int | None,
    note: str = "",
) -> None:
    allowed = POLICY_TRANSITIONS.get(policy.status, set())
    if new_status not in allowed:
        raise InvalidTransition(f"Transicion invalida: {policy.status.value} -> {new_status.value}")
    previous = policy.status
    policy.status = new_status
    _log_policy_event(policy, action, user_id, previous, new_status, note)
    current_app.logger.info("Poliza %s: %s -> %s", policy.number, previous.value, new_status.value)


def _revoke_live_grants(
    policy: Policy,
    reason: GrantRevokeReason,
    now: datetime,
    kind: GrantKind | None = None,
) -> None:
    for grant in policy.edit_grants:
        if grant.revoked_at is None and (kind is None or grant.kind == kind):
            grant.revoke(reason, now)


def _clear_validation(policy: Policy) -> None:
    policy.validated_by_user_id = None
    policy.validated_at = None


def _clear_rejection(policy: Policy) -> None:
    policy.rejection_reason = None
    policy.rejected_by_user_id = None
    policy.rejected_at = None


def _apply_policy_payload(policy: Policy, payload: dict[str, object]) -> list[str]:
    changed: list[str] = []
    for field_name in POLICY_EDITABLE_FIELDS:
        if field_name not in payload:
            continue
        raw = payload[field_name]
        if field_name == "premium":
            value = parse_decimal(raw, "prima")
        elif field_name == "currency":
            value = _parse_enum(Currency, raw, "moneda")
        elif field_name in ("valid_from", "valid_to"):
            value = parse_iso_date(raw, field_name)
        else:
            value = str(raw or "").strip()
            if not value:
                raise ValidationFailed(f"Falta {field_name}")
        if field_name == "number" and value != policy.number:
            _ensure_unique_number(value)
        if getattr(policy, field_name) != value:
            changed.append(field_name)
        setattr(policy, field_name, value)
    # Both ends of the window may move in one edit; validate the final pair.
    _check_window(policy.valid_from, policy.valid_to)
    return changed


def _check_window(valid_from, valid_to) -> None:
    if valid_to < valid_from:
        raise ValidationFailed("La vigencia final no puede ser anterior a la inicial")


def _ensure_unique_number(number: str) -> None:
    if Policy.query.filter_by(number=number).first():
        raise ValidationFailed(f"Ya existe una poliza con numero {number}")


def _can_edit_scope(actor: ActorContext, policy: Policy, now: datetime) -> bool:
    if can_manage_owned(actor, [policy.responsable_user_id, policy.created_by_user_id]):
        return True
    return _live_manual_grant(policy, actor.user_id, now) is not None


# Clients


@service_boundary
def create_client(actor: ActorContext, payload: dict[str, object]) -> ActionResult:
    require_permission(actor, "clientes.crear")
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Falta nombre del cliente")
    executive_id = parse_optional_int(payload.get("executive_in_charge_id"), "ejecutivo") or actor.user_id
    _get_user(executive_id, "ejecutivo")

    client = Client(
        client_type=_parse_enum(ClientType, str(payload.get("client_type") or "natural"), "tipo de cliente"),
        name=name,
        document_number=str(payload.get("document_number") or "").strip(),
        phone=str(payload.get("phone") or "").strip(),
        mobile=str(payload.get("mobile") or "").strip(),
        email=str(payload.get("email") or "").strip().lower(),
        executive_in_charge_id=executive_id,
        created_by_user_id=actor.user_id,
    )
    db.session.add(client)
    db.session.flush()
    _log_client_event(client, "creacion", f"Cliente {client.name} creado", actor.user_id)
    db.session.commit()
    return ActionResult.ok(serialize_client(client))


@service_boundary
def get_client(actor: ActorContext, client_id: int) -> ActionResult:
    require_permission(actor, "clientes.ver")
    return ActionResult.ok(serialize_client(_get_client(client_id)))


@service_boundary
def update_client(actor: ActorContext, client_id: int, payload: dict[str, object]) -> ActionResult:
    require_permission(actor, "clientes.editar")
    client = _get_client(client_id)
    if not can_manage_owned(actor, [client.executive_in_charge_id, client.created_by_user_id]):
        raise PermissionDenied("El cliente pertenece a otra cartera")

    changed: list[str] = []
    for field_name in CLIENT_EDITABLE_FIELDS:
        if field_name not in payload:
            continue
        if field_name == "client_type":
            value = _parse_enum(ClientType, str(payload[field_name]), "tipo de cliente")
        else:
            value = str(payload[field_name] or "").strip()
            if field_name == "email":
                value = value.lower()
        if field_name == "name" and not value:
            raise ValidationFailed("Falta nombre del cliente")
        if getattr(client, field_name) != value:
            changed.append(field_name)
            setattr(client, field_name, value)
    if changed:
        _log_client_event(client, "edicion", "Campos: " + ", ".join(changed), actor.user_id)
    db.session.commit()
    return ActionResult.ok(serialize_client(client))


@service_boundary
def list_clients(
    actor: ActorContext,
    filters: dict[str, str] | None = None,
    page: int | None = None,
    page_size: int | None = None,
) -> ListResult:
    require_permission(actor, "clientes.ver")
    filters = filters or {}
    query = Client.query
    text = (filters.get("q") or "").strip()
    if text:
        like = f"%{text}%"
        query = query.filter(or_(Client.name.ilike(like), Client.document_number.ilike(like)))
    executive_id = parse_optional_int(filters.get("executive_in_charge_id"), "ejecutivo")
    if executive_id is not None:
        query = query.filter(Client.executive_in_charge_id == executive_id)
    query = query.order_by(Client.name.asc(), Client.id.asc())
    return _list_result(query, page, page_size, serialize_client)


@service_boundary
def client_history(actor: ActorContext, client_id: int) -> ListResult:
    require_permission(actor, "clientes.trazabilidad")
    client = _get_client(client_id)
    rows = [
        {
            "action": row.action,
            "detail": row.detail,
            "user_id": row.user_id,
            "created_at": isoformat(row.created_at),
        }
        for row in client.history
    ]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


# Policies


def _list_result(query, page: int | None, page_size: int | None, serializer) -> ListResult:
    default_size = current_app.config["DEFAULT_PAGE_SIZE"]
    max_size = current_app.config["MAX_PAGE_SIZE"]
    safe_page, safe_size = clamp_page(page, page_size, default_size, max_size)
    rows, total = paginate_query(query, safe_page, safe_size, default_size, max_size)
    return ListResult.of([serializer(row) for row in rows], total, safe_page, safe_size)


@service_boundary
def create_policy(actor: ActorContext, payload: dict[str, object]) -> ActionResult:
    require_permission(actor, "polizas.crear")
    number = str(payload.get("number") or "").strip()
    if not number:
        raise ValidationFailed("Falta numero de poliza")
    _ensure_unique_number(number)
    ramo = str(payload.get("ramo") or "").strip().lower()
    if not ramo:
        raise ValidationFailed("Falta ramo")
    client = _get_client(parse_optional_int(payload.get("client_id"), "cliente"))
    responsable_id = parse_optional_int(payload.get("responsable_user_id"), "responsable") or actor.user_id
    _get_user(responsable_id, "responsable")
    valid_from = parse_iso_date(payload.get("valid_from"), "vigencia inicial")
    valid_to = parse_iso_date(payload.get("valid_to"), "vigencia final")
    _check_window(valid_from, valid_to)

    policy = Policy(
        number=number,
        client_id=client.id,
        ramo=ramo,
        insurer=str(payload.get("insurer") or "").strip(),
        status=PolicyStatus.PENDING,
        responsable_user_id=responsable_id,
        created_by_user_id=actor.user_id,
        premium=parse_decimal(payload.get("premium"), "prima"),
        currency=_parse_enum(Currency, str(payload.get("currency") or "BOB"), "moneda"),
        valid_from=valid_from,
        valid_to=valid_to,
    )
    db.session.add(policy)
    db.session.flush()
    _log_policy_event(policy, "creacion", actor.user_id, None, PolicyStatus.PENDING)
    db.session.commit()
    return ActionResult.ok(serialize_policy(policy))


@service_boundary
def get_policy(actor: ActorContext, policy_id: int, now: datetime | None = None) -> ActionResult:
    require_permission(actor, "polizas.ver")
    return ActionResult.ok(serialize_policy(_get_policy(policy_id), detail=True, now=now))


@service_boundary
def list_policies(
    actor: ActorContext,
    filters: dict[str, str] | None = None,
    page: int | None = None,
    page_size: int | None = None,
) -> ListResult:
    require_permission(actor, "polizas.ver")
    filters = filters or {}
    query = Policy.query.join(Client, Policy.client_id == Client.id)
    if filters.get("status"):
        query = query.filter(Policy.status == _parse_enum(PolicyStatus, filters["status"], "estado"))
    if filters.get("ramo"):
        query = query.filter(Policy.ramo == filters["ramo"].strip().lower())
    responsable_id = parse_optional_int(filters.get("responsable_user_id"), "responsable")
    if responsable_id is not None:
        query = query.filter(Policy.responsable_user_id == responsable_id)
    text = (filters.get("q") or "").strip()
    if text:
        like = f"%{text}%"
        query = query.filter(or_(Policy.number.ilike(like), Client.name.ilike(like)))
    query = query.order_by(Policy.created_at.desc(), Policy.id.desc())
    return _list_result(query, page, page_size, serialize_policy)


@service_boundary
def list_pending_validation(actor: ActorContext, page: int | None = None, page_size: int | None = None) -> ListResult:
    require_permission(actor, "polizas.validar")
    query = Policy.query.filter(Policy.status == PolicyStatus.PENDING).order_by(Policy.created_at.asc(), Policy.id.asc())
    return _list_result(query, page, page_size, serialize_policy)


def _authorize_rejected_edit(actor: ActorContext, policy: Policy, now: datetime) -> None:
    if actor.is_admin:
        return
    candidates = [
        grant
        for grant in policy.edit_grants
        if grant.kind == GrantKind.REJECTION
        and grant.holder_user_id == actor.user_id
        and grant.revoke_reason in (None, GrantRevokeReason.EXPIRED)
    ]
    if not candidates:
        raise PermissionDenied("Solo el creador de la poliza puede corregirla")
    if not candidates[-1].is_live(now):
        raise EditWindowExpired()


@service_boundary
def update_policy(
    actor: ActorContext,
    policy_id: int,
    payload: dict[str, object],
    now: datetime | None = None,
) -> ActionResult:
    """Edit a policy.

    Any edit sends the policy back to validation: an active policy drops its
    validation metadata, a rejected one is resubmitted through its edit grant.
    """
    if not actor.is_authenticated:
        raise Unauthenticated("Sesion requerida")
    now = now or utcnow()
    policy = _get_policy(policy_id)

    if policy.status in READ_ONLY_STATUSES:
        raise InvalidTransition(f"La poliza {policy.number} esta {policy.status.value} y no admite cambios")

    if policy.status == PolicyStatus.REJECTED:
        _authorize_rejected_edit(actor, policy, now)
        changed = _apply_policy_payload(policy, payload)
        _clear_rejection(policy)
        _revoke_live_grants(policy, GrantRevokeReason.RESUBMITTED, now, GrantKind.REJECTION)
        _transition_policy_status(
            policy,
            PolicyStatus.PENDING,
            "reenvio",
            actor.user_id,
            "Campos: " + ", ".join(changed) if changed else "",
        )
        db.session.commit()
        return ActionResult.ok(serialize_policy(policy, detail=True, now=now))

    require_permission(actor, "polizas.editar")
    if not _can_edit_scope(actor, policy, now):
        raise PermissionDenied("La poliza pertenece a otra cartera")

    changed = _apply_policy_payload(policy, payload)
    previous = policy.status
    if previous == PolicyStatus.ACTIVE:
        policy.status = PolicyStatus.PENDING
        _clear_validation(policy)
    _log_policy_event(
        policy,
        "edicion",
        actor.user_id,
        previous,
        policy.status,
        "Campos: " + ", ".join(changed) if changed else "",
    )
    db.session.commit()
    return ActionResult.ok(serialize_policy(policy, detail=True, now=now))


@service_boundary
def validate_policy(actor: ActorContext, policy_id: int, now: datetime | None = None) -> ActionResult:
    require_permission(actor, "polizas.validar")
    policy = _get_policy(policy_id)
    if policy.status != PolicyStatus.PENDING:
        raise InvalidTransition(f"Solo se validan polizas pendientes (estado actual: {policy.status.value})")
    _transition_policy_status(policy, PolicyStatus.ACTIVE, "validacion", actor.user_id)
    policy.validated_by_user_id = actor.user_id
    policy.validated_at = now or utcnow()
    db.session.commit()
    return ActionResult.ok(serialize_policy(policy))


@service_boundary
def reject_policy(actor: ActorContext, policy_id: int, reason: str, now: datetime | None = None) -> ActionResult:
    require_permission(actor, "polizas.validar")
    now = now or utcnow()
    clean_reason = (reason or "").strip()
    min_length = current_app.config["REJECTION_REASON_MIN_LENGTH"]
    if len(clean_reason) < min_length:
        raise ValidationFailed(f"El motivo de rechazo debe tener al menos {min_length} caracteres")

    policy = _get_policy(policy_id)
    if policy.status == PolicyStatus.ACTIVE and not actor.is_admin:
        raise PermissionDenied("Solo un administrador puede rechazar una poliza activa")
    _transition_policy_status(policy, PolicyStatus.REJECTED, "rechazo", actor.user_id, clean_reason)
    _clear_validation(policy)
    policy.rejection_reason = clean_reason
    policy.rejected_by_user_id = actor.user_id
    policy.rejected_at = now

    _revoke_live_grants(policy, GrantRevokeReason.SUPERSEDED, now, GrantKind.REJECTION)
    grant = None
    if policy.created_by_user_id is not None:
        grant = EditGrant(
            policy_id=policy.id,
            holder_user_id=policy.created_by_user_id,
            kind=GrantKind.REJECTION,
            granted_by_user_id=actor.user_id,
            granted_at=now,
            expires_at=now + timedelta(hours=current_app.config["EDIT_GRANT_HOURS"]),
        )
        db.session.add(grant)
    db.session.commit()

    data = serialize_policy(policy, detail=True, now=now)
    if grant is None:
        data["notice_error"] = "La poliza no tiene creador registrado"
        return ActionResult.ok(data)
    try:
        data["notice"] = compose_rejection_notice(policy, clean_reason, grant.expires_at).to_dict()
    except MissingContactError as exc:
        current_app.logger.warning("Aviso de rechazo sin destinatario para %s: %s", policy.number, exc.message)
        data["notice_error"] = exc.message
    return ActionResult.ok(data)


@service_boundary
def cancel_policy(actor: ActorContext, policy_id: int, note: str = "", now: datetime | None = None) -> ActionResult:
    require_permission(actor, "polizas.validar")
    policy = _get_policy(policy_id)
    _transition_policy_status(policy, PolicyStatus.CANCELLED, "anulacion", actor.user_id, (note or "").strip())
    _revoke_live_grants(policy, GrantRevokeReason.SUPERSEDED, now or utcnow())
    db.session.commit()
    return ActionResult.ok(serialize_policy(policy))


def _add_year(value):
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        return value.replace(month=2, day=28, year=value.year + 1)


@service_boundary
def renew_policy(actor: ActorContext, policy_id: int, payload: dict[str, object] | None = None) -> ActionResult:
    require_permission(actor, "vencimientos.generar")
    payload = payload or {}
    policy = _get_policy(policy_id)
    if policy.status != PolicyStatus.ACTIVE:
        raise InvalidTransition(f"Solo se renuevan polizas activas (estado actual: {policy.status.value})")

    number = str(payload.get("number") or "").strip() or f"{policy.number}-R{policy.valid_to.year + 1}"
    _ensure_unique_number(number)
    valid_from = parse_iso_date(payload.get("valid_from") or (policy.valid_to + timedelta(days=1)), "vigencia inicial")
    valid_to = parse_iso_date(payload.get("valid_to") or _add_year(policy.valid_to), "vigencia final")
    premium = parse_decimal(payload.get("premium", policy.premium), "prima")
    _check_window(valid_from, valid_to)

    _transition_policy_status(policy, PolicyStatus.RENEWED, "renovacion", actor.user_id, f"Renovada como {number}")
    _revoke_live_grants(policy, GrantRevokeReason.SUPERSEDED, utcnow())
    successor = Policy(
        number=number,
        client_id=policy.client_id,
        ramo=policy.ramo,
        insurer=policy.insurer,
        status=PolicyStatus.PENDING,
        responsable_user_id=policy.responsable_user_id,
        created_by_user_id=actor.user_id,
        premium=premium,
        currency=policy.currency,
        valid_from=valid_from,
        valid_to=valid_to,
        renewed_from_id=policy.id,
    )
    db.session.add(successor)
    db.session.flush()
    _log_policy_event(successor, "creacion", actor.user_id, None, PolicyStatus.PENDING, f"Renovacion de {policy.number}")
    db.session.commit()
    return ActionResult.ok({"previous": serialize_policy(policy), "renewal": serialize_policy(successor)})


@service_boundary
def delete_policy_permanently(actor: ActorContext, policy_id: int) -> ActionResult:
    require_admin(actor)
    policy = _get_policy(policy_id)
    if policy.claims:
        raise InvalidTransition("La poliza tiene siniestros registrados")
    if Policy.query.filter_by(renewed_from_id=policy.id).first() is not None:
        raise InvalidTransition("La poliza tiene una renovacion registrada")
    keys = [document.storage_key for document in policy.documents]
    number = policy.number
    db.session.delete(policy)
    db.session.commit()
    current_app.logger.info("Poliza %s eliminada definitivamente por usuario %s", number, actor.user_id)

    orphaned = purge_storage_objects(keys)
    data = {"id": policy_id, "number": number, "documents_removed": len(keys) - len(orphaned)}
    if orphaned:
        raise PartialFailure(
            "Poliza eliminada de BD pero fallo la eliminacion de archivos",
            data={**data, "orphaned_keys": orphaned},
        )
    return ActionResult.ok(data)


def expire_edit_grants(now: datetime | None = None) -> int:
    """Mark lapsed edit grants as revoked. Expiry checks never depend on this having run."""
    now = now or utcnow()
    expired = 0
    for grant in EditGrant.query.filter(EditGrant.revoked_at.is_(None)).all():
        if not grant.is_live(now):
            grant.revoke(GrantRevokeReason.EXPIRED, now)
            expired += 1
    db.session.commit()
    return expired


# Edit grants

GRANTABLE_ROLES = {Role.COMERCIAL, Role.AGENTE}


def serialize_edit_grant(grant: EditGrant, now: datetime) -> dict[str, object]:
    return {
        "id": grant.id,
        "policy_id": grant.policy_id,
        "kind": grant.kind.value,
        "holder_user_id": grant.holder_user_id,
        "granted_by_user_id": grant.granted_by_user_id,
        "granted_at": isoformat(grant.granted_at),
        "expires_at": isoformat(grant.expires_at),
        "revoked_at": isoformat(grant.revoked_at),
        "revoke_reason": grant.revoke_reason.value if grant.revoke_reason else None,
        "revoked_by_user_id": grant.revoked_by_user_id,
        "note": grant.note,
        "live": grant.is_live(now),
    }


def _require_grant_manager(actor: ActorContext, policy: Policy) -> bool:
    """Admins and `admin.permisos` holders manage any grant; team leaders only their members' policies.

    Returns True when the actor acts as a team leader.
    """
    if not actor.is_authenticated:
        raise Unauthenticated("Sesion requerida")
    if can_perform(actor, "admin.permisos"):
        return False
    if policy.responsable_user_id in actor.led_member_ids:
        return True
    raise PermissionDenied("Sin permisos para gestionar permisos de esta poliza")


def _get_edit_grant(grant_id: int) -> EditGrant:
    grant = db.session.get(EditGrant, grant_id)
    if grant is None:
        raise NotFound("Permiso de edicion no encontrado")
    return grant


@service_boundary
def grant_policy_edit(
    actor: ActorContext,
    policy_id: int,
    holder_user_id: int | str | None,
    hours: int | str | None = None,
    note: str = "",
    now: datetime | None = None,
) -> ActionResult:
    """Give a comercial or agente a revocable, time-boxed right to edit one policy."""
    now = now or utcnow()
    policy = _get_policy(policy_id)
    as_leader = _require_grant_manager(actor, policy)
    if policy.status in READ_ONLY_STATUSES:
        raise InvalidTransition(f"La poliza {policy.number} esta {policy.status.value} y no admite cambios")

    holder = _get_user(parse_optional_int(holder_user_id, "usuario"))
    if holder.role not in GRANTABLE_ROLES:
        raise ValidationFailed("Solo se otorgan permisos a usuarios comercial o agente")
    if as_leader and holder.id not in actor.led_member_ids:
        raise PermissionDenied("Solo puede otorgar permisos a miembros de su equipo")
    if _live_manual_grant(policy, holder.id, now) is not None:
        raise ValidationFailed(f"{holder.full_name} ya tiene un permiso activo para esta poliza")

    duration = parse_optional_int(hours, "horas")
    if duration is None:
        duration = current_app.config["MANUAL_EDIT_GRANT_HOURS"]
    if duration <= 0:
        raise ValidationFailed("La duracion del permiso debe ser positiva")

    grant = EditGrant(
        policy_id=policy.id,
        holder_user_id=holder.id,
        kind=GrantKind.MANUAL,
        granted_by_user_id=actor.user_id,
        granted_at=now,
        expires_at=now + timedelta(hours=duration),
        note=(note or "").strip(),
    )
    db.session.add(grant)
    _log_policy_event(
        policy,
        "permiso_edicion",
        actor.user_id,
        note=f"Permiso de edicion para {holder.full_name} por {duration}h",
    )
    db.session.commit()
    current_app.logger.info("Permiso de edicion %s otorgado a %s por usuario %s", policy.number, holder.email, actor.user_id)
    return ActionResult.ok(serialize_edit_grant(grant, now))


@service_boundary
def revoke_policy_edit(actor: ActorContext, grant_id: int, note: str = "", now: datetime | None = None) -> ActionResult:
    now = now or utcnow()
    grant = _get_edit_grant(grant_id)
    _require_grant_manager(actor, grant.policy)
    if grant.kind != GrantKind.MANUAL:
        raise InvalidTransition("La ventana de correccion por rechazo no se revoca manualmente")
    if grant.revoked_at is not None:
        raise InvalidTransition("El permiso ya fue revocado")

    grant.revoke(GrantRevokeReason.REVOKED, now, actor.user_id)
    clean_note = (note or "").strip()
    if clean_note:
        grant.note = f"{grant.note}\nRevocado: {clean_note}".strip()
    _log_policy_event(grant.policy, "permiso_revocado", actor.user_id, note=clean_note)
    db.session.commit()
    return ActionResult.ok(serialize_edit_grant(grant, now))


@service_boundary
def list_policy_edit_grants(actor: ActorContext, policy_id: int, now: datetime | None = None) -> ListResult:
    now = now or utcnow()
    policy = _get_policy(policy_id)
    _require_grant_manager(actor, policy)
    rows = [serialize_edit_grant(grant, now) for grant in policy.edit_grants]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def check_policy_edit(actor: ActorContext, policy_id: int, now: datetime | None = None) -> ActionResult:
    """Whether the actor may edit the policy right now, and on what grounds."""
    require_permission(actor, "polizas.ver")
    now = now or utcnow()
    policy = _get_policy(policy_id)

    def answer(can_edit: bool, reason: str, grant: EditGrant | None = None) -> ActionResult:
        return ActionResult.ok(
            {
                "can_edit": can_edit,
                "reason": reason,
                "grant": serialize_edit_grant(grant, now) if grant else None,
            }
        )

    if policy.status in READ_ONLY_STATUSES:
        return answer(False, "read_only")
    if actor.is_admin:
        return answer(True, "admin")
    if policy.status == PolicyStatus.REJECTED:
        grant = _live_grant(policy, now)
        if grant is not None and grant.holder_user_id == actor.user_id:
            return answer(True, "rejection_window", grant)
        return answer(False, "rejected")
    if not can_perform(actor, "polizas.editar"):
        return answer(False, "insufficient_role")
    if policy.responsable_user_id in actor.led_member_ids:
        return answer(True, "team_leader")
    if can_manage_owned(actor, [policy.responsable_user_id, policy.created_by_user_id]):
        return answer(True, "owner")
    grant = _live_manual_grant(policy, actor.user_id, now)
    if grant is not None:
        return answer(True, "grant", grant)
    return answer(False, "no_grant")
