from __future__ import annotations

from sigs.admin.services import (
    add_team_member,
    change_user_role,
    create_team,
    grant_user_permission,
    list_teams,
    remove_team_member,
    revoke_user_permission,
    transfer,
)
from sigs.core.extensions import db
from sigs.core.models import Client, ClientHistory, Policy, PolicyHistory, Role, User
from sigs.core.permissions import can_perform
from sigs.core.results import ErrorKind


def test_last_admin_cannot_be_demoted(app, actor, user_id):
    result = change_user_role(actor("admin"), user_id("admin"), "comercial")

    assert not result.success
    assert result.error_kind == ErrorKind.INVALID_TRANSITION
    assert result.detail == "last_admin"
    assert db.session.get(User, user_id("admin")).role == Role.ADMIN


def test_admin_can_be_demoted_when_another_admin_exists(app, actor, user_id):
    promoted = change_user_role(actor("admin"), user_id("cobranza"), "admin")
    assert promoted.data["role"] == "admin"

    demoted = change_user_role(actor("admin"), user_id("admin"), "usuario")
    assert demoted.success
    assert db.session.get(User, user_id("admin")).role == Role.USUARIO


def test_role_change_is_admin_only_and_validated(app, actor, user_id):
    denied = change_user_role(actor("comercial"), user_id("agente"), "admin")
    assert denied.error_kind == ErrorKind.PERMISSION_DENIED

    invalid = change_user_role(actor("admin"), user_id("agente"), "superusuario")
    assert invalid.error_kind == ErrorKind.VALIDATION_FAILED


def test_extra_permission_grant_and_revoke(app, actor, user_id):
    admin = actor("admin")

    granted = grant_user_permission(admin, user_id("cobranza"), "siniestros.ver")
    assert granted.data["extra_permissions"] == ["siniestros.ver"]
    assert can_perform(actor("cobranza"), "siniestros.ver")

    unknown = grant_user_permission(admin, user_id("cobranza"), "todo.poder")
    assert unknown.error_kind == ErrorKind.VALIDATION_FAILED

    revoked = revoke_user_permission(admin, user_id("cobranza"), "siniestros.ver")
    assert revoked.data["extra_permissions"] == []
    assert not can_perform(actor("cobranza"), "siniestros.ver")

    missing = revoke_user_permission(admin, user_id("cobranza"), "siniestros.ver")
    assert missing.error_kind == ErrorKind.NOT_FOUND


def test_team_membership_management(app, actor, user_id):
    admin = actor("admin")
    team = create_team(admin, {"name": "Equipo Santa Cruz"}).data

    duplicate = create_team(admin, {"name": "Equipo Santa Cruz"})
    assert duplicate.error_kind == ErrorKind.VALIDATION_FAILED

    add_team_member(admin, team["id"], user_id("siniestros"), "lider")
    added = add_team_member(admin, team["id"], user_id("cobranza"))
    assert [(m["user_id"], m["team_role"]) for m in added.data["members"]] == [
        (user_id("siniestros"), "lider"),
        (user_id("cobranza"), "miembro"),
    ]
    assert actor("siniestros").led_member_ids == frozenset({user_id("cobranza")})

    removed = remove_team_member(admin, team["id"], user_id("cobranza"))
    assert [m["user_id"] for m in removed.data["members"]] == [user_id("siniestros")]

    names = [t["name"] for t in list_teams(admin).data]
    assert names == ["Equipo La Paz", "Equipo Santa Cruz"]


def test_usuario_cannot_transfer(app, actor, user_id):
    result = transfer(actor("usuario"), None, user_id("agente"), user_id("comercial"), "policies")

    assert result.error_kind == ErrorKind.PERMISSION_DENIED
    assert Policy.query.filter_by(number="AUT-0001").one().responsable_user_id == user_id("agente")


def test_transfer_all_policies_logs_history(app, actor, user_id):
    result = transfer(actor("admin"), None, user_id("agente"), user_id("comercial"), "policies", "Licencia")

    assert result.success
    assert result.data["moved"] == {"policies": 1, "clients": 0}
    policy = Policy.query.filter_by(number="AUT-0001").one()
    assert policy.responsable_user_id == user_id("comercial")
    row = PolicyHistory.query.filter_by(policy_id=policy.id, action="transferencia").one()
    assert "Licencia" in row.note


def test_transfer_skips_foreign_entities_as_partial_failure(app, actor, user_id):
    aut = Policy.query.filter_by(number="AUT-0001").one().id
    inc = Policy.query.filter_by(number="INC-0001").one().id

    result = transfer(actor("admin"), [aut, inc, 9999], user_id("agente"), user_id("siniestros"), "policies")

    assert not result.success
    assert result.error_kind == ErrorKind.PARTIAL_FAILURE
    assert result.data["moved_ids"]["policies"] == [aut]
    assert result.data["moved_count"] == 1
    assert result.data["skipped_count"] == 2
    assert {(s["id"], s["reason"]) for s in result.data["skipped"]} == {(inc, "not_owned"), (9999, "not_found")}
    assert db.session.get(Policy, aut).responsable_user_id == user_id("siniestros")
    assert db.session.get(Policy, inc).responsable_user_id == user_id("comercial")


def test_transfer_both_moves_client_with_its_policies(app, actor, user_id):
    juan = Client.query.filter_by(name="Juan Perez Mamani").one()

    result = transfer(actor("admin"), [juan.id], user_id("agente"), user_id("comercial"), "both")

    assert result.success
    assert result.data["moved"] == {"policies": 1, "clients": 1}
    assert result.data["moved_count"] == 2
    assert result.data["skipped_count"] == 0
    assert db.session.get(Client, juan.id).executive_in_charge_id == user_id("comercial")
    assert ClientHistory.query.filter_by(client_id=juan.id, action="transferencia").count() == 1


def test_transfer_validates_users_and_scope(app, actor, user_id):
    admin = actor("admin")

    same = transfer(admin, None, user_id("agente"), user_id("agente"), "policies")
    assert same.error_kind == ErrorKind.VALIDATION_FAILED

    scope = transfer(admin, None, user_id("agente"), user_id("comercial"), "todo")
    assert scope.error_kind == ErrorKind.VALIDATION_FAILED

    missing = transfer(admin, None, 9999, user_id("comercial"), "clients")
    assert missing.error_kind == ErrorKind.NOT_FOUND

    change_user_role(admin, user_id("cobranza"), "desactivado")
    inactive = transfer(admin, None, user_id("agente"), user_id("cobranza"), "clients")
    assert inactive.error_kind == ErrorKind.VALIDATION_FAILED
