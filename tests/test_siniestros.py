from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sigs.cartera.services import delete_policy_permanently
from sigs.core.extensions import db
from sigs.core.models import (
    Claim,
    ClaimHistory,
    Client,
    ClientType,
    Coverage,
    Currency,
    Policy,
    PolicyStatus,
)
from sigs.core.results import ErrorKind
from sigs.core.utils import utcnow
from sigs.siniestros.services import (
    add_claim_observation,
    change_claim_status,
    close_claim,
    coverages_for_line,
    create_claim,
    delete_claim_permanently,
    get_claim,
    list_claim_statuses,
    list_claims,
    reassign_claim,
    search_active_policies,
)


def _claim(actor, policy_id, now=None, **overrides):
    payload = {
        "policy_id": policy_id,
        "occurred_on": "2026-02-10",
        "location": "Av. Arce, La Paz",
        "description": "Choque lateral en interseccion",
        "reserve_amount": "1500",
    }
    payload.update(overrides)
    return create_claim(actor, payload, now=now)


def _coverage_id(ramo, name):
    return Coverage.query.filter_by(ramo=ramo, name=name).one().id


def test_claim_codes_are_sequential_per_year(app, actor, policy_id):
    siniestros = actor("siniestros")
    year = utcnow().year

    first = _claim(siniestros, policy_id("AUT-0001"))
    second = _claim(siniestros, policy_id("AUT-0001"))

    assert first.success, first.error
    assert first.data["code"] == f"{year}-00001"
    assert second.data["code"] == f"{year}-00002"
    assert first.data["status"]["code"] == "abierto"
    assert first.data["reserve_amount"] == "1500.00"
    assert [row["action"] for row in first.data["history"]] == ["creacion"]


def test_claim_requires_active_policy(app, actor, policy_id):
    result = _claim(actor("siniestros"), policy_id("INC-0001"))
    assert result.error_kind == ErrorKind.VALIDATION_FAILED
    assert Claim.query.count() == 0


def test_claim_dates_must_be_ordered(app, actor, policy_id):
    result = _claim(actor("siniestros"), policy_id("AUT-0001"), occurred_on="2026-03-10", reported_on="2026-03-01")
    assert result.error_kind == ErrorKind.VALIDATION_FAILED


def test_coverages_must_match_policy_line(app, actor, policy_id):
    siniestros = actor("siniestros")
    fire = _coverage_id("incendio", "Terremoto")
    wrong = _claim(siniestros, policy_id("AUT-0001"), coverage_ids=[fire])
    assert wrong.error_kind == ErrorKind.VALIDATION_FAILED

    theft = _coverage_id("automotores", "Robo total")
    result = _claim(siniestros, policy_id("AUT-0001"), coverage_ids=[theft], custom_coverage="Rotura de parabrisas")
    assert result.success
    names = [c["name"] for c in result.data["coverages"]]
    assert names == ["Robo total", "Rotura de parabrisas"]
    custom = Coverage.query.filter_by(ramo="automotores", name="Rotura de parabrisas").one()
    assert custom.is_custom is True

    catalog = coverages_for_line(siniestros, "automotores")
    assert catalog.data[-1]["name"] == "Rotura de parabrisas"


def test_responsable_must_handle_claims(app, actor, policy_id, user_id):
    result = _claim(actor("siniestros"), policy_id("AUT-0001"), responsable_user_id=user_id("agente"))
    assert result.error_kind == ErrorKind.VALIDATION_FAILED

    comercial = _claim(actor("siniestros"), policy_id("AUT-0001"), responsable_user_id=user_id("comercial"))
    assert comercial.data["responsable_user_id"] == user_id("comercial")


def test_agente_cannot_register_claims(app, actor, policy_id):
    result = _claim(actor("agente"), policy_id("AUT-0001"))
    assert result.error_kind == ErrorKind.PERMISSION_DENIED


def test_status_change_and_same_status_refused(app, actor, policy_id):
    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy_id("AUT-0001")).data

    moved = change_claim_status(siniestros, claim["id"], "en_revision", "Peritaje solicitado")
    assert moved.success
    assert moved.data["status"]["code"] == "en_revision"
    assert moved.data["history"][-1]["from_status"] == "abierto"
    assert moved.data["history"][-1]["note"] == "Peritaje solicitado"

    same = change_claim_status(siniestros, claim["id"], "en_revision")
    assert same.error_kind == ErrorKind.INVALID_TRANSITION

    unknown = change_claim_status(siniestros, claim["id"], "inexistente")
    assert unknown.error_kind == ErrorKind.NOT_FOUND


def test_status_change_cannot_close_claim(app, actor, policy_id):
    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy_id("AUT-0001")).data

    refused = change_claim_status(siniestros, claim["id"], "rechazado")
    assert refused.error_kind == ErrorKind.INVALID_TRANSITION
    stored = db.session.get(Claim, claim["id"])
    assert stored.status.code == "abierto"
    assert stored.closure_kind is None

    closed = close_claim(siniestros, claim["id"], "rechazo", {"reason": "Poliza sin cobertura de robo"})
    assert closed.success
    assert closed.data["closure_reason"] == "Poliza sin cobertura de robo"


def test_rejection_closure_needs_reason_and_notifies_by_whatsapp(app, actor, policy_id):
    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy_id("AUT-0001")).data

    missing = close_claim(siniestros, claim["id"], "rechazo", {})
    assert missing.error_kind == ErrorKind.VALIDATION_FAILED

    closed = close_claim(siniestros, claim["id"], "rechazo", {"reason": "Conductor sin licencia vigente"})

    assert closed.success
    assert closed.data["status"]["category"] == "cerrado"
    assert closed.data["closure_kind"] == "rechazo"
    assert closed.data["closure_reason"] == "Conductor sin licencia vigente"
    assert closed.data["closed_at"] is not None
    notice = closed.data["notice"]
    assert notice["channel"] == "whatsapp"
    assert notice["to"] == "59171234567"
    assert notice["url"].startswith("https://wa.me/59171234567?text=")
    assert "Conductor sin licencia vigente" in notice["body"]


def test_indemnity_closure_records_amounts(app, actor, policy_id):
    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy_id("AUT-0001")).data

    incomplete = close_claim(siniestros, claim["id"], "indemnizacion", {"claimed_amount": "2000"})
    assert incomplete.error_kind == ErrorKind.VALIDATION_FAILED

    closed = close_claim(
        siniestros,
        claim["id"],
        "indemnizacion",
        {"claimed_amount": "2000", "deductible": "500", "paid_amount": "1500", "is_commercial_payment": "true"},
    )

    assert closed.success
    assert closed.data["status"]["code"] == "concluido"
    assert closed.data["paid_amount"] == "1500.00"
    assert closed.data["is_commercial_payment"] is True
    assert "Bs. 1.500,00" in closed.data["notice"]["body"]


def test_closed_claim_accepts_no_further_transitions(app, actor, policy_id, user_id):
    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy_id("AUT-0001")).data
    close_claim(siniestros, claim["id"], "declinacion", {"reason": "Fuera de cobertura"})

    assert change_claim_status(siniestros, claim["id"], "abierto").error_kind == ErrorKind.INVALID_TRANSITION
    again = close_claim(siniestros, claim["id"], "rechazo", {"reason": "x"})
    assert again.error_kind == ErrorKind.INVALID_TRANSITION
    reassign = reassign_claim(siniestros, claim["id"], user_id("comercial"))
    assert reassign.error_kind == ErrorKind.INVALID_TRANSITION


def test_closure_without_client_contact_still_closes(app, actor, user_id):
    client = Client(client_type=ClientType.NATURAL, name="Sin Contacto", executive_in_charge_id=user_id("agente"))
    db.session.add(client)
    db.session.flush()
    policy = Policy(
        number="AUT-0900",
        client_id=client.id,
        ramo="automotores",
        status=PolicyStatus.ACTIVE,
        responsable_user_id=user_id("agente"),
        created_by_user_id=user_id("agente"),
        premium=Decimal("100.00"),
        currency=Currency.BOB,
        valid_from=date(2026, 1, 1),
        valid_to=date(2026, 12, 31),
    )
    db.session.add(policy)
    db.session.commit()

    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy.id).data
    closed = close_claim(siniestros, claim["id"], "declinacion", {"reason": "Desistimiento del cliente"})

    assert closed.success
    assert closed.data["status"]["category"] == "cerrado"
    assert "notice" not in closed.data
    assert "Sin Contacto" in closed.data["notice_error"]


def test_reassignment_is_logged(app, actor, policy_id, user_id):
    siniestros = actor("siniestros")
    claim = _claim(siniestros, policy_id("AUT-0001")).data

    result = reassign_claim(siniestros, claim["id"], user_id("comercial"), "Cliente corporativo")
    assert result.success
    assert result.data["responsable_user_id"] == user_id("comercial")
    row = ClaimHistory.query.filter_by(claim_id=claim["id"], action="reasignacion").one()
    assert "Cliente corporativo" in row.note

    same = reassign_claim(siniestros, claim["id"], user_id("comercial"))
    assert same.error_kind == ErrorKind.INVALID_TRANSITION


def test_attention_flag_follows_last_activity(app, actor, policy_id):
    siniestros = actor("siniestros")
    now = utcnow()
    claim = _claim(siniestros, policy_id("AUT-0001"), now=now - timedelta(days=11)).data

    assert get_claim(siniestros, claim["id"], now=now).data["needs_attention"] is True

    observed = add_claim_observation(siniestros, claim["id"], "Se contacto al taller", now=now)
    assert observed.success
    detail = get_claim(siniestros, claim["id"], now=now).data
    assert detail["needs_attention"] is False
    assert detail["observations"][0]["body"] == "Se contacto al taller"

    empty = add_claim_observation(siniestros, claim["id"], "   ")
    assert empty.error_kind == ErrorKind.VALIDATION_FAILED


def test_closed_claims_never_need_attention(app, actor, policy_id):
    siniestros = actor("siniestros")
    now = utcnow()
    claim = _claim(siniestros, policy_id("AUT-0001"), now=now - timedelta(days=30)).data
    close_claim(siniestros, claim["id"], "rechazo", {"reason": "Siniestro no amparado"}, now=now - timedelta(days=20))

    assert get_claim(siniestros, claim["id"], now=now).data["needs_attention"] is False


def test_list_claims_filters(app, actor, policy_id):
    siniestros = actor("siniestros")
    open_claim = _claim(siniestros, policy_id("AUT-0001")).data
    closed_claim = _claim(siniestros, policy_id("AUT-0001")).data
    close_claim(siniestros, closed_claim["id"], "rechazo", {"reason": "Documentacion falsa"})

    open_only = list_claims(siniestros, {"open_only": "1"})
    assert [row["id"] for row in open_only.data] == [open_claim["id"]]

    rejected = list_claims(siniestros, {"status": "rechazado"})
    assert [row["id"] for row in rejected.data] == [closed_claim["id"]]

    by_policy = list_claims(siniestros, {"q": "AUT-0001"})
    assert by_policy.count == 2


def test_catalog_queries(app, actor):
    siniestros = actor("siniestros")

    statuses = list_claim_statuses(siniestros)
    assert [row["code"] for row in statuses.data][:3] == ["abierto", "en_revision", "documentacion_pendiente"]

    policies = search_active_policies(siniestros, "Perez")
    assert [row["number"] for row in policies.data] == ["AUT-0001"]
    assert search_active_policies(siniestros, "INC").data == []


def test_policy_with_claims_cannot_be_deleted(app, actor, policy_id):
    claim = _claim(actor("siniestros"), policy_id("AUT-0001")).data

    refused = delete_policy_permanently(actor("admin"), policy_id("AUT-0001"))
    assert refused.error_kind == ErrorKind.INVALID_TRANSITION

    denied = delete_claim_permanently(actor("siniestros"), claim["id"])
    assert denied.error_kind == ErrorKind.PERMISSION_DENIED

    deleted = delete_claim_permanently(actor("admin"), claim["id"])
    assert deleted.success
    assert db.session.get(Claim, claim["id"]) is None

    policy_deleted = delete_policy_permanently(actor("admin"), policy_id("AUT-0001"))
    assert policy_deleted.success
