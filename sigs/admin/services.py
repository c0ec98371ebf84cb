from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from sigs.core.context import ActorContext
from sigs.core.extensions import db
from sigs.core.models import (
    Client,
    ClientHistory,
    Policy,
    PolicyHistory,
    Role,
    Team,
    TeamMember,
    TeamRole,
    User,
    UserPermission,
)
from sigs.core.permissions import ALL_PERMISSIONS, require_permission, role_permissions
from sigs.core.results import (
    ActionResult,
    LastAdminError,
    ListResult,
    NotFound,
    PartialFailure,
    ValidationFailed,
    service_boundary,
)

TRANSFER_SCOPES = ("policies", "clients", "both")


def serialize_user(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.value,
        "extra_permissions": sorted(p.permission for p in user.extra_permissions),
    }


def serialize_team(team: Team) -> dict[str, object]:
    return {
        "id": team.id,
        "name": team.name,
        "description": team.description,
        "members": [
            {"user_id": m.user_id, "full_name": m.user.full_name, "team_role": m.team_role.value}
            for m in sorted(team.members, key=lambda m: m.id)
        ],
    }


def _get_user(user_id: int | None) -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFound("Usuario no encontrado")
    return user


def _get_team(team_id: int) -> Team:
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFound("Equipo no encontrado")
    return team


# Users and roles


@service_boundary
def list_users(actor: ActorContext) -> ListResult:
    require_permission(actor, "admin.usuarios")
    rows = [serialize_user(u) for u in User.query.order_by(User.full_name.asc()).all()]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def change_user_role(actor: ActorContext, user_id: int, role: str) -> ActionResult:
    require_permission(actor, "admin.roles")
    try:
        new_role = Role((role or "").strip().lower())
    except ValueError as exc:
        raise ValidationFailed(f"Rol invalido: {role}") from exc
    user = _get_user(user_id)
    if user.role == Role.ADMIN and new_role != Role.ADMIN:
        admins = User.query.filter_by(role=Role.ADMIN).count()
        if admins <= 1:
            raise LastAdminError("No se puede quitar el rol al ultimo administrador")
    previous = user.role
    user.role = new_role
    db.session.commit()
    current_app.logger.info(
        "Rol de %s cambiado %s -> %s por usuario %s",
        user.email,
        previous.value,
        new_role.value,
        actor.user_id,
    )
    return ActionResult.ok(serialize_user(user))


@service_boundary
def grant_user_permission(actor: ActorContext, user_id: int, permission: str) -> ActionResult:
    require_permission(actor, "admin.permisos")
    permission = (permission or "").strip()
    if permission not in ALL_PERMISSIONS:
        raise ValidationFailed(f"Permiso desconocido: {permission}")
    user = _get_user(user_id)
    if permission in role_permissions(user.role):
        return ActionResult.ok(serialize_user(user))
    if not any(p.permission == permission for p in user.extra_permissions):
        db.session.add(UserPermission(user_id=user.id, permission=permission, granted_by_user_id=actor.user_id))
        db.session.commit()
    return ActionResult.ok(serialize_user(user))


@service_boundary
def revoke_user_permission(actor: ActorContext, user_id: int, permission: str) -> ActionResult:
    require_permission(actor, "admin.permisos")
    user = _get_user(user_id)
    grant = next((p for p in user.extra_permissions if p.permission == (permission or "").strip()), None)
    if grant is None:
        raise NotFound(f"El usuario no tiene el permiso adicional {permission}")
    user.extra_permissions.remove(grant)
    db.session.commit()
    return ActionResult.ok(serialize_user(user))


# Teams


@service_boundary
def list_teams(actor: ActorContext) -> ListResult:
    require_permission(actor, "admin.equipos")
    rows = [serialize_team(t) for t in Team.query.order_by(Team.name.asc()).all()]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def create_team(actor: ActorContext, payload: dict[str, object]) -> ActionResult:
    require_permission(actor, "admin.equipos")
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Falta nombre del equipo")
    if Team.query.filter_by(name=name).first():
        raise ValidationFailed(f"Ya existe un equipo llamado {name}")
    team = Team(name=name, description=str(payload.get("description") or "").strip())
    db.session.add(team)
    db.session.commit()
    return ActionResult.ok(serialize_team(team))


@service_boundary
def add_team_member(actor: ActorContext, team_id: int, user_id: int, team_role: str = "miembro") -> ActionResult:
    require_permission(actor, "admin.equipos")
    team = _get_team(team_id)
    user = _get_user(user_id)
    try:
        role = TeamRole((team_role or "miembro").strip().lower())
    except ValueError as exc:
        raise ValidationFailed(f"Rol de equipo invalido: {team_role}") from exc
    member = next((m for m in team.members if m.user_id == user.id), None)
    if member is None:
        team.members.append(TeamMember(user_id=user.id, team_role=role))
    else:
        member.team_role = role
    db.session.commit()
    return ActionResult.ok(serialize_team(team))


@service_boundary
def remove_team_member(actor: ActorContext, team_id: int, user_id: int) -> ActionResult:
    require_permission(actor, "admin.equipos")
    team = _get_team(team_id)
    member = next((m for m in team.members if m.user_id == user_id), None)
    if member is None:
        raise NotFound("El usuario no pertenece al equipo")
    team.members.remove(member)
    db.session.commit()
    return ActionResult.ok(serialize_team(team))


# Transfers


def _move_policy(policy_id: int, from_user: User, to_user: User, actor: ActorContext, reason: str) -> str | None:
    policy = db.session.get(Policy, policy_id)
    if policy is None:
        return "not_found"
    if policy.responsable_user_id != from_user.id:
        return "not_owned"
    policy.responsable_user_id = to_user.id
    db.session.add(
        PolicyHistory(
            policy_id=policy.id,
            action="transferencia",
            note=f"{from_user.full_name} -> {to_user.full_name}. {reason}".strip(),
            user_id=actor.user_id,
        )
    )
    return None


def _move_client(client_id: int, from_user: User, to_user: User, actor: ActorContext, reason: str) -> str | None:
    client = db.session.get(Client, client_id)
    if client is None:
        return "not_found"
    if client.executive_in_charge_id != from_user.id:
        return "not_owned"
    client.executive_in_charge_id = to_user.id
    db.session.add(
        ClientHistory(
            client_id=client.id,
            action="transferencia",
            detail=f"{from_user.full_name} -> {to_user.full_name}. {reason}".strip(),
            user_id=actor.user_id,
        )
    )
    return None


def _in_savepoint(move, entity_id: int, *args) -> str | None:
    try:
        with db.session.begin_nested():
            return move(entity_id, *args)
    except SQLAlchemyError as exc:
        current_app.logger.warning("Transferencia fallida para %s %s: %s", move.__name__, entity_id, exc)
        return "error"


@service_boundary
def transfer(
    actor: ActorContext,
    entity_ids: list[int] | None,
    from_user_id: int,
    to_user_id: int,
    scope: str,
    reason: str = "",
) -> ActionResult:
    """Move ownership of policies and/or clients between two users.

    ``entity_ids=None`` moves everything the source owns in scope. With scope
    ``both`` explicit ids are client ids, and each moved client takes along
    the policies the source owns for it. Entities that cannot move are
    skipped; any skip makes the result a partial failure.
    """
    require_permission(actor, "admin.equipos")
    if scope not in TRANSFER_SCOPES:
        raise ValidationFailed(f"Ambito de transferencia invalido: {scope}")
    from_user = _get_user(from_user_id)
    to_user = _get_user(to_user_id)
    if from_user.id == to_user.id:
        raise ValidationFailed("Origen y destino deben ser distintos")
    if not to_user.is_active:
        raise ValidationFailed(f"{to_user.full_name} esta desactivado")
    reason = (reason or "").strip()
    context = (from_user, to_user, actor, reason)

    moved: dict[str, list[int]] = {"policies": [], "clients": []}
    skipped: list[dict[str, object]] = []

    def run(kind: str, move, ids: list[int]) -> None:
        for entity_id in ids:
            outcome = _in_savepoint(move, entity_id, *context)
            if outcome is None:
                moved[kind].append(entity_id)
            else:
                skipped.append({"kind": kind, "id": entity_id, "reason": outcome})

    if scope == "policies":
        ids = entity_ids
        if ids is None:
            ids = [p.id for p in Policy.query.filter_by(responsable_user_id=from_user.id).order_by(Policy.id).all()]
        run("policies", _move_policy, ids)
    elif scope == "clients":
        ids = entity_ids
        if ids is None:
            ids = [c.id for c in Client.query.filter_by(executive_in_charge_id=from_user.id).order_by(Client.id).all()]
        run("clients", _move_client, ids)
    else:
        if entity_ids is None:
            client_ids = [
                c.id for c in Client.query.filter_by(executive_in_charge_id=from_user.id).order_by(Client.id).all()
            ]
            policy_ids = [
                p.id for p in Policy.query.filter_by(responsable_user_id=from_user.id).order_by(Policy.id).all()
            ]
            run("clients", _move_client, client_ids)
            run("policies", _move_policy, policy_ids)
        else:
            run("clients", _move_client, entity_ids)
            policy_ids: list[int] = []
            if moved["clients"]:
                owned = Policy.query.filter(
                    Policy.client_id.in_(moved["clients"]),
                    Policy.responsable_user_id == from_user.id,
                )
                policy_ids = [p.id for p in owned.order_by(Policy.id).all()]
            run("policies", _move_policy, policy_ids)

    db.session.commit()
    data = {
        "moved": {kind: len(ids) for kind, ids in moved.items()},
        "moved_ids": moved,
        "skipped": skipped,
        "moved_count": sum(len(ids) for ids in moved.values()),
        "skipped_count": len(skipped),
    }
    current_app.logger.info(
        "Transferencia %s de %s a %s: movidos=%s omitidos=%s",
        scope,
        from_user.email,
        to_user.email,
        data["moved"],
        len(skipped),
    )
    if skipped:
        raise PartialFailure(f"{len(skipped)} elementos no se transfirieron", data=data)
    return ActionResult.ok(data)
