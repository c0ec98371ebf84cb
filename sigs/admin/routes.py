from __future__ import annotations

from flask import g
from flask_login import login_required

from sigs.admin import admin_bp
from sigs.admin.services import (
    add_team_member,
    change_user_role,
    create_team,
    grant_user_permission,
    list_teams,
    list_users,
    remove_team_member,
    revoke_user_permission,
    transfer,
)
from sigs.core.results import json_result, request_payload


def _int_or_none(value) -> int | None:
    raw = str(value if value is not None else "").strip()
    return int(raw) if raw.isdigit() else None


@admin_bp.get("/usuarios")
@login_required
def users_index():
    return json_result(list_users(g.actor))


@admin_bp.post("/usuarios/<int:user_id>/rol")
@login_required
def users_change_role(user_id: int):
    payload = request_payload()
    return json_result(change_user_role(g.actor, user_id, str(payload.get("role") or "")))


@admin_bp.post("/usuarios/<int:user_id>/permisos")
@login_required
def users_grant_permission(user_id: int):
    payload = request_payload()
    return json_result(grant_user_permission(g.actor, user_id, str(payload.get("permission") or "")))


@admin_bp.delete("/usuarios/<int:user_id>/permisos/<permission>")
@login_required
def users_revoke_permission(user_id: int, permission: str):
    return json_result(revoke_user_permission(g.actor, user_id, permission))


@admin_bp.get("/equipos")
@login_required
def teams_index():
    return json_result(list_teams(g.actor))


@admin_bp.post("/equipos")
@login_required
def teams_create():
    return json_result(create_team(g.actor, request_payload()), 201)


@admin_bp.post("/equipos/<int:team_id>/miembros")
@login_required
def teams_add_member(team_id: int):
    payload = request_payload()
    result = add_team_member(
        g.actor,
        team_id,
        _int_or_none(payload.get("user_id")),
        str(payload.get("team_role") or "miembro"),
    )
    return json_result(result)


@admin_bp.delete("/equipos/<int:team_id>/miembros/<int:user_id>")
@login_required
def teams_remove_member(team_id: int, user_id: int):
    return json_result(remove_team_member(g.actor, team_id, user_id))


@admin_bp.post("/transferencias")
@login_required
def transfers_create():
    payload = request_payload()
    raw_ids = payload.get("entity_ids")
    entity_ids = None
    if raw_ids is not None:
        entity_ids = [int(value) for value in raw_ids if str(value).strip().isdigit()]
    result = transfer(
        g.actor,
        entity_ids,
        _int_or_none(payload.get("from_user_id")),
        _int_or_none(payload.get("to_user_id")),
        str(payload.get("scope") or ""),
        str(payload.get("reason") or ""),
    )
    return json_result(result)
