from __future__ import annotations

from datetime import timedelta

import pytest

from sigs.cartera.services import (
    cancel_policy,
    check_policy_edit,
    client_history,
    create_client,
    create_policy,
    delete_policy_permanently,
    expire_edit_grants,
    get_policy,
    grant_policy_edit,
    list_policies,
    list_policy_edit_grants,
    reject_policy,
    renew_policy,
    revoke_policy_edit,
    update_client,
    update_policy,
    validate_policy,
)
from sigs.core.extensions import db
from sigs.core.models import (
    EditGrant,
    GrantRevokeReason,
    Policy,
    PolicyHistory,
    PolicyStatus,
)
from sigs.core.results import ErrorKind
from sigs.core.utils import utcnow

REASON = "Falta la copia del carnet del asegurado"


def _new_policy(actor, number="AUT-0100", **overrides):
    client_id = overrides.pop("client_id", None)
    if client_id is None:
        client_id = create_client(actor, {"name": "Maria Quispe", "mobile": "70011223"}).data["id"]
    payload = {
        "number": number,
        "client_id": client_id,
        "ramo": "automotores",
        "insurer": "Nacional Seguros",
        "premium": "2500.50",
        "currency": "BOB",
        "valid_from": "2026-05-01",
        "valid_to": "2027-04-30",
    }
    payload.update(overrides)
    return create_policy(actor, payload)


def test_create_policy_starts_pending_with_history(app, actor, user_id):
    agente = actor("agente")
    result = _new_policy(agente)

    assert result.success
    assert result.data["status"] == "pendiente"
    assert result.data["premium"] == "2500.50"
    assert result.data["created_by_user_id"] == user_id("agente")
    history = PolicyHistory.query.filter_by(policy_id=result.data["id"]).all()
    assert [row.action for row in history] == ["creacion"]


def test_create_policy_rejects_bad_window_and_duplicate_number(app, actor):
    agente = actor("agente")

    inverted = _new_policy(agente, valid_from="2026-05-01", valid_to="2026-04-01")
    assert not inverted.success
    assert inverted.error_kind == ErrorKind.VALIDATION_FAILED

    duplicate = _new_policy(agente, number="AUT-0001")
    assert not duplicate.success
    assert "AUT-0001" in duplicate.error

    missing_date = _new_policy(agente, valid_from="")
    assert missing_date.error_kind == ErrorKind.VALIDATION_FAILED


def test_cobranza_cannot_create_policies(app, actor):
    result = _new_policy(actor("cobranza"), client_id=1)
    assert not result.success
    assert result.error_kind == ErrorKind.PERMISSION_DENIED


def test_validate_pending_policy_records_validator(app, actor, policy_id, user_id):
    result = validate_policy(actor("usuario"), policy_id("INC-0001"))

    assert result.success
    assert result.data["status"] == "activa"
    assert result.data["validated_by_user_id"] == user_id("usuario")
    assert result.data["validated_at"] is not None

    again = validate_policy(actor("usuario"), policy_id("INC-0001"))
    assert again.error_kind == ErrorKind.INVALID_TRANSITION


def test_reject_requires_reason_of_minimum_length(app, actor, policy_id):
    result = reject_policy(actor("usuario"), policy_id("INC-0001"), "corto")

    assert not result.success
    assert result.error_kind == ErrorKind.VALIDATION_FAILED
    assert db.session.get(Policy, policy_id("INC-0001")).status == PolicyStatus.PENDING
    assert EditGrant.query.count() == 0


def test_reject_grants_creator_a_time_boxed_edit_window(app, actor, policy_id, user_id):
    now = utcnow()
    result = reject_policy(actor("usuario"), policy_id("INC-0001"), REASON, now=now)

    assert result.success
    assert result.data["status"] == "rechazada"
    assert result.data["rejection_reason"] == REASON
    assert result.data["edit_grant"]["holder_user_id"] == user_id("comercial")

    grant = EditGrant.query.one()
    assert grant.holder_user_id == user_id("comercial")
    assert grant.revoked_at is None
    assert grant.is_live(now + timedelta(hours=24) - timedelta(seconds=1))
    assert not grant.is_live(now + timedelta(hours=24))

    notice = result.data["notice"]
    assert notice["channel"] == "email"
    assert notice["to"] == "comercial@patria.local"
    assert "INC-0001" in notice["subject"]
    assert REASON in notice["body"]


def test_creator_resubmits_inside_edit_window(app, actor, policy_id):
    now = utcnow()
    reject_policy(actor("usuario"), policy_id("INC-0001"), REASON, now=now)

    result = update_policy(
        actor("comercial"),
        policy_id("INC-0001"),
        {"insurer": "Bisa Seguros"},
        now=now + timedelta(hours=24) - timedelta(seconds=1),
    )

    assert result.success
    assert result.data["status"] == "pendiente"
    assert result.data["insurer"] == "Bisa Seguros"
    assert result.data["rejection_reason"] is None
    assert result.data["edit_grant"] is None
    grant = EditGrant.query.one()
    assert grant.revoke_reason == GrantRevokeReason.RESUBMITTED
    actions = [row.action for row in PolicyHistory.query.filter_by(policy_id=policy_id("INC-0001")).all()]
    assert actions[-2:] == ["rechazo", "reenvio"]


def test_edit_window_closes_at_expiry_instant(app, actor, policy_id):
    now = utcnow()
    reject_policy(actor("usuario"), policy_id("INC-0001"), REASON, now=now)

    result = update_policy(
        actor("comercial"),
        policy_id("INC-0001"),
        {"insurer": "Bisa Seguros"},
        now=now + timedelta(hours=24),
    )

    assert not result.success
    assert result.error_kind == ErrorKind.INVALID_TRANSITION
    assert result.detail == "edit_window_expired"
    assert result.error == "edit window expired"
    policy = db.session.get(Policy, policy_id("INC-0001"))
    assert policy.status == PolicyStatus.REJECTED
    assert policy.insurer == "Alianza Seguros"


def test_only_grant_holder_or_admin_edits_rejected_policy(app, actor, policy_id):
    now = utcnow()
    reject_policy(actor("usuario"), policy_id("INC-0001"), REASON, now=now)

    denied = update_policy(actor("agente"), policy_id("INC-0001"), {"insurer": "X"}, now=now)
    assert denied.error_kind == ErrorKind.PERMISSION_DENIED

    admin_edit = update_policy(actor("admin"), policy_id("INC-0001"), {"insurer": "Admin Seguros"}, now=now + timedelta(days=3))
    assert admin_edit.success
    assert admin_edit.data["status"] == "pendiente"


def test_second_rejection_supersedes_previous_grant(app, actor, policy_id):
    now = utcnow()
    reject_policy(actor("usuario"), policy_id("INC-0001"), REASON, now=now)
    update_policy(actor("comercial"), policy_id("INC-0001"), {"insurer": "Bisa Seguros"}, now=now + timedelta(hours=1))
    reject_policy(actor("usuario"), policy_id("INC-0001"), REASON + " otra vez", now=now + timedelta(hours=2))

    grants = EditGrant.query.order_by(EditGrant.id).all()
    assert len(grants) == 2
    assert grants[0].revoke_reason == GrantRevokeReason.RESUBMITTED
    assert grants[1].revoked_at is None
    assert grants[1].is_live(now + timedelta(hours=25))


def test_expired_grants_job_marks_lapsed_windows(app, actor, policy_id):
    now = utcnow()
    reject_policy(actor("usuario"), policy_id("INC-0001"), REASON, now=now)

    assert expire_edit_grants(now + timedelta(hours=1)) == 0
    assert expire_edit_grants(now + timedelta(hours=25)) == 1
    assert EditGrant.query.one().revoke_reason == GrantRevokeReason.EXPIRED

    result = update_policy(actor("comercial"), policy_id("INC-0001"), {"insurer": "X"}, now=now + timedelta(hours=26))
    assert result.detail == "edit_window_expired"


def test_only_admin_rejects_active_policy(app, actor, policy_id):
    denied = reject_policy(actor("usuario"), policy_id("AUT-0001"), REASON)
    assert denied.error_kind == ErrorKind.PERMISSION_DENIED

    result = reject_policy(actor("admin"), policy_id("AUT-0001"), REASON)
    assert result.success
    assert result.data["validated_at"] is None
    assert result.data["edit_grant"] is not None


def test_editing_active_policy_sends_it_back_to_validation(app, actor, policy_id):
    result = update_policy(actor("agente"), policy_id("AUT-0001"), {"premium": "3800"})

    assert result.success
    assert result.data["status"] == "pendiente"
    assert result.data["premium"] == "3800.00"
    assert result.data["validated_by_user_id"] is None
    last = result.data["history"][-1]
    assert last["action"] == "edicion"
    assert last["from_status"] == "activa"
    assert last["to_status"] == "pendiente"
    assert "premium" in last["note"]


def test_edit_scope_follows_ownership_and_team_leadership(app, actor, policy_id):
    denied = update_policy(actor("agente"), policy_id("INC-0001"), {"insurer": "X"})
    assert denied.error_kind == ErrorKind.PERMISSION_DENIED

    leader = update_policy(actor("comercial"), policy_id("AUT-0001"), {"insurer": "Univida"})
    assert leader.success


def test_edit_cannot_invert_validity_window(app, actor, policy_id):
    result = update_policy(actor("comercial"), policy_id("INC-0001"), {"valid_to": "2026-01-01"})
    assert result.error_kind == ErrorKind.VALIDATION_FAILED

    both = update_policy(
        actor("comercial"),
        policy_id("INC-0001"),
        {"valid_from": "2028-01-01", "valid_to": "2028-12-31"},
    )
    assert both.success
    assert both.data["valid_from"] == "2028-01-01"


def test_cancelled_policy_is_read_only(app, actor, policy_id):
    cancelled = cancel_policy(actor("usuario"), policy_id("INC-0001"), "Cliente desiste")
    assert cancelled.data["status"] == "cancelada"

    edit = update_policy(actor("admin"), policy_id("INC-0001"), {"insurer": "X"})
    assert edit.error_kind == ErrorKind.INVALID_TRANSITION
    validate = validate_policy(actor("usuario"), policy_id("INC-0001"))
    assert validate.error_kind == ErrorKind.INVALID_TRANSITION


def test_renewal_creates_pending_successor(app, actor, policy_id):
    result = renew_policy(actor("agente"), policy_id("AUT-0001"))

    assert result.success
    previous, renewal = result.data["previous"], result.data["renewal"]
    assert previous["status"] == "renovada"
    assert renewal["status"] == "pendiente"
    assert renewal["number"] == "AUT-0001-R2027"
    assert renewal["renewed_from_id"] == policy_id("AUT-0001")
    assert renewal["valid_from"] == "2027-01-01"
    assert renewal["valid_to"] == "2027-12-31"
    assert renewal["premium"] == "3500.00"

    again = renew_policy(actor("agente"), policy_id("AUT-0001"))
    assert again.error_kind == ErrorKind.INVALID_TRANSITION


def test_renewed_policy_cannot_be_deleted_while_successor_exists(app, actor, policy_id):
    renewal = renew_policy(actor("agente"), policy_id("AUT-0001")).data["renewal"]

    refused = delete_policy_permanently(actor("admin"), policy_id("AUT-0001"))

    assert refused.error_kind == ErrorKind.INVALID_TRANSITION
    assert db.session.get(Policy, renewal["id"]).renewed_from_id == policy_id("AUT-0001")

    assert delete_policy_permanently(actor("admin"), renewal["id"]).success
    assert delete_policy_permanently(actor("admin"), policy_id("AUT-0001")).success


def test_renewal_of_pending_policy_is_refused(app, actor, policy_id):
    result = renew_policy(actor("comercial"), policy_id("INC-0001"))
    assert result.error_kind == ErrorKind.INVALID_TRANSITION


def test_list_policies_filters_and_clamps_page_size(app, actor):
    usuario = actor("usuario")

    active = list_policies(usuario, {"status": "activa"})
    assert [row["number"] for row in active.data] == ["AUT-0001"]

    by_client = list_policies(usuario, {"q": "Illimani"})
    assert [row["number"] for row in by_client.data] == ["INC-0001"]

    clamped = list_policies(usuario, {}, page=0, page_size=1000)
    assert clamped.page == 1
    assert clamped.page_size == 100
    assert clamped.count == 2

    invalid = list_policies(usuario, {"status": "inexistente"})
    assert invalid.error_kind == ErrorKind.VALIDATION_FAILED


def test_policy_detail_includes_history(app, actor, policy_id):
    validate_policy(actor("usuario"), policy_id("INC-0001"))
    detail = get_policy(actor("cobranza"), policy_id("INC-0001"))

    assert detail.success
    assert detail.data["history"][-1]["action"] == "validacion"
    assert detail.data["edit_grant"] is None


def test_client_update_and_traceability(app, actor):
    agente = actor("agente")
    created = create_client(agente, {"name": "Rosa Condori", "email": "ROSA@EXAMPLE.COM"})
    assert created.data["email"] == "rosa@example.com"

    updated = update_client(agente, created.data["id"], {"mobile": "76543210", "name": "Rosa Condori V."})
    assert updated.success

    denied = client_history(agente, created.data["id"])
    assert denied.error_kind == ErrorKind.PERMISSION_DENIED

    history = client_history(actor("usuario"), created.data["id"])
    assert [row["action"] for row in history.data] == ["creacion", "edicion"]
    assert "mobile" in history.data[-1]["detail"]


def test_client_of_other_portfolio_cannot_be_edited(app, actor):
    comercial_client = create_client(actor("comercial"), {"name": "Cliente Comercial"})
    result = update_client(actor("agente"), comercial_client.data["id"], {"phone": "2222222"})
    assert result.error_kind == ErrorKind.PERMISSION_DENIED


def test_history_rows_are_immutable(app, actor, policy_id):
    validate_policy(actor("usuario"), policy_id("INC-0001"))
    row = PolicyHistory.query.filter_by(policy_id=policy_id("INC-0001")).first()
    row.note = "alterado"
    with pytest.raises(ValueError, match="inmutables"):
        db.session.flush()
    db.session.rollback()


def test_manual_edit_grant_lets_holder_edit_until_revoked(app, actor, policy_id, user_id):
    inc = policy_id("INC-0001")
    agente = actor("agente")
    assert check_policy_edit(agente, inc).data["reason"] == "no_grant"
    assert update_policy(agente, inc, {"insurer": "Alianza"}).error_kind == ErrorKind.PERMISSION_DENIED

    granted = grant_policy_edit(actor("admin"), inc, user_id("agente"), 48, "Cubre vacaciones")
    assert granted.success
    assert granted.data["kind"] == "manual"
    assert granted.data["live"] is True

    check = check_policy_edit(agente, inc).data
    assert check["can_edit"] is True
    assert check["reason"] == "grant"
    assert update_policy(agente, inc, {"insurer": "Alianza"}).success

    revoked = revoke_policy_edit(actor("admin"), granted.data["id"], "Regreso el titular")
    assert revoked.data["revoke_reason"] == "revoked"
    assert revoked.data["revoked_by_user_id"] == user_id("admin")
    assert update_policy(agente, inc, {"insurer": "Bisa"}).error_kind == ErrorKind.PERMISSION_DENIED

    again = revoke_policy_edit(actor("admin"), granted.data["id"])
    assert again.error_kind == ErrorKind.INVALID_TRANSITION
    actions = [row.action for row in PolicyHistory.query.filter_by(policy_id=inc).order_by(PolicyHistory.id)]
    assert actions[-3:] == ["permiso_edicion", "edicion", "permiso_revocado"]


def test_manual_edit_grant_expires(app, actor, policy_id, user_id):
    inc = policy_id("INC-0001")
    now = utcnow()
    grant_policy_edit(actor("admin"), inc, user_id("agente"), 2, now=now)

    assert update_policy(actor("agente"), inc, {"insurer": "Alianza"}, now=now + timedelta(hours=1)).success
    late = update_policy(actor("agente"), inc, {"insurer": "Bisa"}, now=now + timedelta(hours=2))
    assert late.error_kind == ErrorKind.PERMISSION_DENIED


def test_team_leader_grants_only_within_team(app, actor, policy_id, user_id):
    comercial = actor("comercial")

    granted = grant_policy_edit(comercial, policy_id("AUT-0001"), user_id("agente"))
    assert granted.success
    assert list_policy_edit_grants(comercial, policy_id("AUT-0001")).count == 1

    foreign = grant_policy_edit(comercial, policy_id("INC-0001"), user_id("agente"))
    assert foreign.error_kind == ErrorKind.PERMISSION_DENIED

    agente = grant_policy_edit(actor("agente"), policy_id("AUT-0001"), user_id("agente"))
    assert agente.error_kind == ErrorKind.PERMISSION_DENIED


def test_edit_grant_validation(app, actor, policy_id, user_id):
    admin = actor("admin")
    inc = policy_id("INC-0001")

    wrong_role = grant_policy_edit(admin, inc, user_id("usuario"))
    assert wrong_role.error_kind == ErrorKind.VALIDATION_FAILED

    bad_duration = grant_policy_edit(admin, inc, user_id("agente"), 0)
    assert bad_duration.error_kind == ErrorKind.VALIDATION_FAILED

    assert grant_policy_edit(admin, inc, user_id("agente")).success
    duplicate = grant_policy_edit(admin, inc, user_id("agente"))
    assert duplicate.error_kind == ErrorKind.VALIDATION_FAILED

    cancel_policy(actor("usuario"), inc)
    closed = grant_policy_edit(admin, policy_id("INC-0001"), user_id("comercial"))
    assert closed.error_kind == ErrorKind.INVALID_TRANSITION
    assert EditGrant.query.filter_by(policy_id=inc, revoked_at=None).count() == 0


def test_rejection_window_is_not_revoked_manually(app, actor, policy_id):
    inc = policy_id("INC-0001")
    reject_policy(actor("usuario"), inc, REASON)

    grants = list_policy_edit_grants(actor("admin"), inc).data
    assert [row["kind"] for row in grants] == ["rechazo"]

    refused = revoke_policy_edit(actor("admin"), grants[0]["id"])
    assert refused.error_kind == ErrorKind.INVALID_TRANSITION
    assert check_policy_edit(actor("comercial"), inc).data["reason"] == "rejection_window"
