from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from sigs.core.context import ActorContext
from sigs.core.extensions import db
from sigs.core.models import (
    Claim,
    ClaimHistory,
    ClaimObservation,
    ClaimStatus,
    ClaimStatusCategory,
    Client,
    ClosureKind,
    Coverage,
    Currency,
    Policy,
    PolicyStatus,
    Role,
    User,
)
from sigs.core.notifications import compose_closure_notice
from sigs.core.permissions import require_admin, require_permission
from sigs.core.results import (
    ActionResult,
    InvalidTransition,
    ListResult,
    MissingContactError,
    NotFound,
    PartialFailure,
    ValidationFailed,
    service_boundary,
)
from sigs.core.utils import (
    clamp_page,
    isoformat,
    paginate_query,
    parse_decimal,
    parse_iso_date,
    parse_optional_decimal,
    parse_optional_int,
    utcnow,
)
from sigs.documentos.services import purge_storage_objects

CLAIM_HANDLER_ROLES = {Role.ADMIN, Role.COMERCIAL, Role.SINIESTROS}
REASON_CLOSURES = {ClosureKind.RECHAZO, ClosureKind.DECLINACION}


def serialize_status(status: ClaimStatus) -> dict[str, object]:
    return {
        "id": status.id,
        "code": status.code,
        "name": status.name,
        "description": status.description,
        "sort_order": status.sort_order,
        "active": status.active,
        "category": status.category.value,
        "closure_kind": status.closure_kind.value if status.closure_kind else None,
    }


def serialize_coverage(coverage: Coverage) -> dict[str, object]:
    return {
        "id": coverage.id,
        "ramo": coverage.ramo,
        "name": coverage.name,
        "description": coverage.description,
        "is_custom": coverage.is_custom,
    }


def _amount(value) -> str | None:
    return str(value) if value is not None else None


def serialize_claim(claim: Claim, detail: bool = False, now: datetime | None = None) -> dict[str, object]:
    now = now or utcnow()
    data: dict[str, object] = {
        "id": claim.id,
        "code": claim.code,
        "policy": {"id": claim.policy_id, "number": claim.policy.number, "ramo": claim.policy.ramo},
        "client": {"id": claim.policy.client_id, "name": claim.policy.client.name},
        "status": {"code": claim.status.code, "name": claim.status.name, "category": claim.status.category.value},
        "responsable_user_id": claim.responsable_user_id,
        "created_by_user_id": claim.created_by_user_id,
        "occurred_on": isoformat(claim.occurred_on),
        "reported_on": isoformat(claim.reported_on),
        "location": claim.location,
        "reserve_amount": _amount(claim.reserve_amount),
        "currency": claim.currency.value,
        "closure_kind": claim.closure_kind.value if claim.closure_kind else None,
        "closed_at": isoformat(claim.closed_at),
        "needs_attention": claim.needs_attention(now, current_app.config["CLAIM_ATTENTION_DAYS"]),
        "last_activity_at": isoformat(claim.last_activity_at),
    }
    if detail:
        data.update(
            {
                "description": claim.description,
                "coverages": [serialize_coverage(c) for c in claim.coverages],
                "closure_reason": claim.closure_reason,
                "claimed_amount": _amount(claim.claimed_amount),
                "deductible": _amount(claim.deductible),
                "paid_amount": _amount(claim.paid_amount),
                "is_commercial_payment": claim.is_commercial_payment,
                "closed_by_user_id": claim.closed_by_user_id,
                "observations": [
                    {"id": o.id, "body": o.body, "user_id": o.user_id, "created_at": isoformat(o.created_at)}
                    for o in claim.observations
                ],
                "history": [
                    {
                        "action": h.action,
                        "from_status": h.from_status,
                        "to_status": h.to_status,
                        "note": h.note,
                        "user_id": h.user_id,
                        "created_at": isoformat(h.created_at),
                    }
                    for h in claim.history
                ],
            }
        )
    return data


def _get_claim(claim_id: int) -> Claim:
    claim = db.session.get(Claim, claim_id)
    if claim is None:
        raise NotFound("Siniestro no encontrado")
    return claim


def _active_status(code: str) -> ClaimStatus:
    status = ClaimStatus.query.filter_by(code=(code or "").strip().lower(), active=True).first()
    if status is None:
        raise NotFound(f"Estado de siniestro no encontrado: {code}")
    return status


def _initial_status() -> ClaimStatus:
    status = (
        ClaimStatus.query.filter_by(category=ClaimStatusCategory.OPEN, active=True)
        .order_by(ClaimStatus.sort_order.asc(), ClaimStatus.id.asc())
        .first()
    )
    if status is None:
        raise ValidationFailed("No hay estados de siniestro abiertos configurados")
    return status


def _closure_status(kind: ClosureKind) -> ClaimStatus:
    status = (
        ClaimStatus.query.filter_by(category=ClaimStatusCategory.CLOSED, closure_kind=kind, active=True)
        .order_by(ClaimStatus.sort_order.asc(), ClaimStatus.id.asc())
        .first()
    )
    if status is None:
        raise ValidationFailed(f"No hay estado de cierre configurado para {kind.value}")
    return status


def _next_claim_code(year: int) -> str:
    prefix = f"{year}-"
    last = db.session.query(func.max(Claim.code)).filter(Claim.code.like(f"{prefix}%")).scalar()
    sequence = int(last[len(prefix) :]) if last else 0
    return f"{prefix}{sequence + 1:05d}"


def _parse_closure_kind(value: str | None) -> ClosureKind:
    raw = (value or "").strip().lower()
    try:
        return ClosureKind(raw)
    except ValueError as exc:
        raise ValidationFailed("Tipo de cierre invalido") from exc


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "on", "si", "yes"}


def _log_claim_event(
    claim: Claim,
    action: str,
    user_id: int | None,
    from_status: str | None = None,
    to_status: str | None = None,
    note: str = "",
) -> None:
    db.session.add(
        ClaimHistory(
            claim_id=claim.id,
            action=action,
            from_status=from_status,
            to_status=to_status,
            note=note,
            user_id=user_id,
        )
    )


def _ensure_open(claim: Claim) -> None:
    if not claim.status.is_open:
        raise InvalidTransition(f"El siniestro {claim.code} esta cerrado ({claim.status.code})")


def _apply_status(claim: Claim, status: ClaimStatus, action: str, actor: ActorContext, note: str, now: datetime) -> None:
    _ensure_open(claim)
    if status.id == claim.status_id:
        raise InvalidTransition(f"El siniestro ya esta en estado {status.code}")
    previous = claim.status.code
    claim.status = status
    if status.category == ClaimStatusCategory.CLOSED:
        claim.closure_kind = status.closure_kind
        claim.closed_at = now
        claim.closed_by_user_id = actor.user_id
    _log_claim_event(claim, action, actor.user_id, previous, status.code, note)
    current_app.logger.info("Siniestro %s: %s -> %s", claim.code, previous, status.code)


def _resolve_coverages(policy: Policy, payload: dict[str, object]) -> list[Coverage]:
    raw_ids = payload.get("coverage_ids") or []
    if isinstance(raw_ids, str):
        raw_ids = [part for part in raw_ids.split(",") if part.strip()]
    coverages: list[Coverage] = []
    for raw_id in raw_ids:
        coverage = db.session.get(Coverage, parse_optional_int(raw_id, "cobertura"))
        if coverage is None or not coverage.active:
            raise ValidationFailed(f"Cobertura no encontrada: {raw_id}")
        if coverage.ramo != policy.ramo:
            raise ValidationFailed(f"La cobertura {coverage.name} no pertenece al ramo {policy.ramo}")
        coverages.append(coverage)

    custom_name = str(payload.get("custom_coverage") or "").strip()
    if custom_name:
        coverage = Coverage.query.filter_by(ramo=policy.ramo, name=custom_name).first()
        if coverage is None:
            coverage = Coverage(ramo=policy.ramo, name=custom_name, is_custom=True)
            db.session.add(coverage)
            db.session.flush()
        if coverage not in coverages:
            coverages.append(coverage)
    return coverages


def _list_result(query, page: int | None, page_size: int | None, serializer) -> ListResult:
    default_size = current_app.config["DEFAULT_PAGE_SIZE"]
    max_size = current_app.config["MAX_PAGE_SIZE"]
    safe_page, safe_size = clamp_page(page, page_size, default_size, max_size)
    rows, total = paginate_query(query, safe_page, safe_size, default_size, max_size)
    return ListResult.of([serializer(row) for row in rows], total, safe_page, safe_size)


@service_boundary
def list_claim_statuses(actor: ActorContext) -> ListResult:
    require_permission(actor, "siniestros.ver")
    rows = [
        serialize_status(s)
        for s in ClaimStatus.query.filter_by(active=True).order_by(ClaimStatus.sort_order.asc()).all()
    ]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def coverages_for_line(actor: ActorContext, ramo: str) -> ListResult:
    require_permission(actor, "siniestros.ver")
    rows = [
        serialize_coverage(c)
        for c in Coverage.query.filter_by(ramo=(ramo or "").strip().lower(), active=True)
        .order_by(Coverage.is_custom.asc(), Coverage.name.asc())
        .all()
    ]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def search_active_policies(actor: ActorContext, text: str, limit: int = 20) -> ListResult:
    require_permission(actor, "siniestros.crear")
    query = Policy.query.join(Client, Policy.client_id == Client.id).filter(Policy.status == PolicyStatus.ACTIVE)
    text = (text or "").strip()
    if text:
        like = f"%{text}%"
        query = query.filter(or_(Policy.number.ilike(like), Client.name.ilike(like), Client.document_number.ilike(like)))
    policies = query.order_by(Policy.number.asc()).limit(max(1, min(limit, 50))).all()
    rows = [
        {
            "id": p.id,
            "number": p.number,
            "ramo": p.ramo,
            "client": {"id": p.client_id, "name": p.client.name},
            "valid_to": isoformat(p.valid_to),
        }
        for p in policies
    ]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def create_claim(actor: ActorContext, payload: dict[str, object], now: datetime | None = None) -> ActionResult:
    require_permission(actor, "siniestros.crear")
    now = now or utcnow()
    policy = db.session.get(Policy, parse_optional_int(payload.get("policy_id"), "poliza"))
    if policy is None:
        raise NotFound("Poliza no encontrada")
    if policy.status != PolicyStatus.ACTIVE:
        raise ValidationFailed(f"Solo se registran siniestros sobre polizas activas ({policy.number} esta {policy.status.value})")

    occurred_on = parse_iso_date(payload.get("occurred_on"), "fecha del siniestro")
    reported_on = parse_iso_date(payload.get("reported_on") or now.date(), "fecha de reporte")
    if occurred_on > reported_on:
        raise ValidationFailed("La fecha del siniestro no puede ser posterior a la de reporte")
    responsable_id = parse_optional_int(payload.get("responsable_user_id"), "responsable") or actor.user_id
    _claim_handler(responsable_id)
    currency_raw = str(payload.get("currency") or policy.currency.value).strip().upper()
    if currency_raw not in Currency.__members__:
        raise ValidationFailed("Moneda invalida")

    coverages = _resolve_coverages(policy, payload)
    status = _initial_status()
    claim = Claim(
        code=_next_claim_code(now.year),
        policy_id=policy.id,
        status_id=status.id,
        responsable_user_id=responsable_id,
        created_by_user_id=actor.user_id,
        occurred_on=occurred_on,
        reported_on=reported_on,
        location=str(payload.get("location") or "").strip(),
        description=str(payload.get("description") or "").strip(),
        reserve_amount=parse_optional_decimal(payload.get("reserve_amount"), "reserva"),
        currency=Currency[currency_raw],
        last_activity_at=now,
    )
    claim.coverages = coverages
    db.session.add(claim)
    db.session.flush()
    _log_claim_event(claim, "creacion", actor.user_id, None, status.code)
    db.session.commit()
    current_app.logger.info("Siniestro %s registrado sobre poliza %s", claim.code, policy.number)
    return ActionResult.ok(serialize_claim(claim, detail=True, now=now))


@service_boundary
def get_claim(actor: ActorContext, claim_id: int, now: datetime | None = None) -> ActionResult:
    require_permission(actor, "siniestros.ver")
    return ActionResult.ok(serialize_claim(_get_claim(claim_id), detail=True, now=now))


@service_boundary
def list_claims(
    actor: ActorContext,
    filters: dict[str, str] | None = None,
    page: int | None = None,
    page_size: int | None = None,
    now: datetime | None = None,
) -> ListResult:
    require_permission(actor, "siniestros.ver")
    filters = filters or {}
    query = Claim.query.join(ClaimStatus, Claim.status_id == ClaimStatus.id).join(Policy, Claim.policy_id == Policy.id)
    if filters.get("status"):
        query = query.filter(ClaimStatus.code == filters["status"].strip().lower())
    if _parse_bool(filters.get("open_only")):
        query = query.filter(ClaimStatus.category == ClaimStatusCategory.OPEN)
    responsable_id = parse_optional_int(filters.get("responsable_user_id"), "responsable")
    if responsable_id is not None:
        query = query.filter(Claim.responsable_user_id == responsable_id)
    text = (filters.get("q") or "").strip()
    if text:
        like = f"%{text}%"
        query = query.filter(or_(Claim.code.ilike(like), Policy.number.ilike(like)))
    query = query.order_by(Claim.created_at.desc(), Claim.id.desc())
    return _list_result(query, page, page_size, lambda claim: serialize_claim(claim, now=now))


@service_boundary
def change_claim_status(
    actor: ActorContext,
    claim_id: int,
    status_code: str,
    note: str = "",
    now: datetime | None = None,
) -> ActionResult:
    require_permission(actor, "siniestros.editar")
    now = now or utcnow()
    claim = _get_claim(claim_id)
    _ensure_open(claim)
    status = _active_status(status_code)
    if status.category == ClaimStatusCategory.CLOSED:
        raise InvalidTransition(f"El estado {status.code} cierra el siniestro; use el cierre con motivo o montos")
    _apply_status(claim, status, "cambio_estado", actor, (note or "").strip(), now)
    db.session.commit()
    return ActionResult.ok(serialize_claim(claim, detail=True, now=now))


@service_boundary
def close_claim(
    actor: ActorContext,
    claim_id: int,
    closure_kind: str,
    payload: dict[str, object] | None = None,
    now: datetime | None = None,
) -> ActionResult:
    require_permission(actor, "siniestros.editar")
    now = now or utcnow()
    payload = payload or {}
    kind = _parse_closure_kind(closure_kind)
    claim = _get_claim(claim_id)
    _ensure_open(claim)

    if kind in REASON_CLOSURES:
        reason = str(payload.get("reason") or "").strip()
        if not reason:
            raise ValidationFailed("Motivo de cierre obligatorio")
        claim.closure_reason = reason
        note = reason
    else:
        claim.claimed_amount = parse_decimal(payload.get("claimed_amount"), "monto reclamado")
        claim.deductible = parse_decimal(payload.get("deductible"), "deducible")
        claim.paid_amount = parse_decimal(payload.get("paid_amount"), "monto pagado")
        if min(claim.claimed_amount, claim.deductible, claim.paid_amount) < 0:
            raise ValidationFailed("Los montos no pueden ser negativos")
        claim.is_commercial_payment = _parse_bool(payload.get("is_commercial_payment"))
        note = f"Pagado {claim.paid_amount} {claim.currency.value}"

    _apply_status(claim, _closure_status(kind), "cierre", actor, note, now)
    db.session.commit()

    data = serialize_claim(claim, detail=True, now=now)
    try:
        data["notice"] = compose_closure_notice(claim, kind).to_dict()
    except MissingContactError as exc:
        current_app.logger.warning("Aviso de cierre sin destinatario para %s: %s", claim.code, exc.message)
        data["notice_error"] = exc.message
    return ActionResult.ok(data)


def _claim_handler(user_id: int | None) -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFound("Responsable no encontrado")
    if user.role not in CLAIM_HANDLER_ROLES:
        raise ValidationFailed(f"{user.full_name} no gestiona siniestros")
    return user


@service_boundary
def reassign_claim(
    actor: ActorContext,
    claim_id: int,
    user_id: int,
    note: str = "",
    now: datetime | None = None,
) -> ActionResult:
    require_permission(actor, "siniestros.editar")
    claim = _get_claim(claim_id)
    _ensure_open(claim)
    handler = _claim_handler(user_id)
    if handler.id == claim.responsable_user_id:
        raise InvalidTransition(f"{handler.full_name} ya es responsable del siniestro")
    previous = claim.responsable_user_id
    claim.responsable_user_id = handler.id
    _log_claim_event(
        claim,
        "reasignacion",
        actor.user_id,
        note=f"Responsable {previous} -> {handler.id}. {(note or '').strip()}".strip(),
    )
    db.session.commit()
    return ActionResult.ok(serialize_claim(claim, detail=True, now=now))


@service_boundary
def add_claim_observation(actor: ActorContext, claim_id: int, body: str, now: datetime | None = None) -> ActionResult:
    require_permission(actor, "siniestros.editar")
    now = now or utcnow()
    claim = _get_claim(claim_id)
    text = (body or "").strip()
    if not text:
        raise ValidationFailed("La observacion no puede estar vacia")
    observation = ClaimObservation(claim_id=claim.id, body=text, user_id=actor.user_id, created_at=now)
    db.session.add(observation)
    claim.last_activity_at = now
    db.session.commit()
    return ActionResult.ok({"id": observation.id, "claim_id": claim.id, "body": observation.body})


@service_boundary
def delete_claim_permanently(actor: ActorContext, claim_id: int) -> ActionResult:
    require_admin(actor)
    claim = _get_claim(claim_id)
    keys = [document.storage_key for document in claim.documents]
    code = claim.code
    db.session.delete(claim)
    db.session.commit()
    current_app.logger.info("Siniestro %s eliminado definitivamente por usuario %s", code, actor.user_id)

    orphaned = purge_storage_objects(keys)
    data = {"id": claim_id, "code": code, "documents_removed": len(keys) - len(orphaned)}
    if orphaned:
        raise PartialFailure(
            "Siniestro eliminado de BD pero fallo la eliminacion de archivos",
            data={**data, "orphaned_keys": orphaned},
        )
    return ActionResult.ok(data)
