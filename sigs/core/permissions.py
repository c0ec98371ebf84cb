from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from sigs.core.models import Role
from sigs.core.results import PermissionDenied, Unauthenticated

if TYPE_CHECKING:
    from sigs.core.context import ActorContext


ALL_PERMISSIONS: tuple[str, ...] = (
    "polizas.ver",
    "polizas.crear",
    "polizas.editar",
    "polizas.validar",
    "clientes.ver",
    "clientes.crear",
    "clientes.editar",
    "clientes.trazabilidad",
    "siniestros.ver",
    "siniestros.crear",
    "siniestros.editar",
    "vencimientos.generar",
    "documentos.descartar",
    "documentos.restaurar",
    "documentos.eliminar",
    "admin.usuarios",
    "admin.roles",
    "admin.permisos",
    "admin.equipos",
)

# Admin bypasses every check, so it needs no entry of its own.
ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: frozenset(ALL_PERMISSIONS),
    Role.USUARIO: frozenset(
        {
            "polizas.ver",
            "polizas.validar",
            "clientes.ver",
            "clientes.trazabilidad",
            "siniestros.ver",
        }
    ),
    Role.AGENTE: frozenset(
        {
            "polizas.ver",
            "polizas.crear",
            "polizas.editar",
            "clientes.ver",
            "clientes.crear",
            "clientes.editar",
            "vencimientos.generar",
        }
    ),
    Role.COMERCIAL: frozenset(
        {
            "polizas.ver",
            "polizas.crear",
            "polizas.editar",
            "clientes.ver",
            "clientes.crear",
            "clientes.editar",
            "vencimientos.generar",
            "siniestros.ver",
            "siniestros.crear",
            "siniestros.editar",
            "documentos.descartar",
        }
    ),
    Role.COBRANZA: frozenset({"polizas.ver", "clientes.ver"}),
    Role.SINIESTROS: frozenset(
        {
            "siniestros.ver",
            "siniestros.crear",
            "siniestros.editar",
            "polizas.ver",
            "clientes.ver",
            "documentos.descartar",
        }
    ),
    Role.INVITADO: frozenset(),
    Role.DESACTIVADO: frozenset(),
}


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str


def role_permissions(role: Role | None) -> frozenset[str]:
    if role is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def decide(actor: ActorContext, action: str) -> PermissionDecision:
    if not actor.is_authenticated:
        return PermissionDecision(False, "unauthenticated")
    if actor.role == Role.ADMIN:
        return PermissionDecision(True, "admin")
    if action in actor.permissions:
        return PermissionDecision(True, "ok")
    return PermissionDecision(False, "insufficient_role")


def can_perform(actor: ActorContext, action: str) -> bool:
    return decide(actor, action).allowed


def require_permission(actor: ActorContext, action: str) -> None:
    decision = decide(actor, action)
    if decision.allowed:
        return
    if decision.reason == "unauthenticated":
        raise Unauthenticated("Sesion requerida")
    raise PermissionDenied(f"Permiso requerido: {action}")


def require_admin(actor: ActorContext) -> None:
    if not actor.is_authenticated:
        raise Unauthenticated("Sesion requerida")
    if actor.role != Role.ADMIN:
        raise PermissionDenied("Solo administradores")


def can_manage_owned(actor: ActorContext, owner_ids: Iterable[int | None]) -> bool:
    """Admin, the owner itself, or a leader of a team the owner belongs to."""
    if not actor.is_authenticated:
        return False
    if actor.role == Role.ADMIN:
        return True
    for owner_id in owner_ids:
        if owner_id is None:
            continue
        if owner_id == actor.user_id or owner_id in actor.led_member_ids:
            return True
    return False
