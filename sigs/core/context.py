from __future__ import annotations

from dataclasses import dataclass, field

from flask import g
from flask_login import current_user

from sigs.core.models import Role, TeamRole, User
from sigs.core.permissions import role_permissions


@dataclass(frozen=True)
class ActorContext:
    """Who is acting in the current request, resolved once and passed to every service."""

    user_id: int | None = None
    role: Role | None = None
    email: str = ""
    full_name: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)
    team_ids: frozenset[int] = field(default_factory=frozenset)
    # Members of the teams this actor leads.
    led_member_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and self.role not in (None, Role.DESACTIVADO)

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == Role.ADMIN

    @classmethod
    def anonymous(cls) -> ActorContext:
        return cls()

    @classmethod
    def for_user(cls, user: User) -> ActorContext:
        if user.role == Role.DESACTIVADO:
            return cls(user_id=user.id, role=user.role, email=user.email, full_name=user.full_name)

        permissions = set(role_permissions(user.role))
        permissions.update(grant.permission for grant in user.extra_permissions)

        team_ids: set[int] = set()
        led_member_ids: set[int] = set()
        for membership in user.team_memberships:
            team_ids.add(membership.team_id)
            if membership.team_role == TeamRole.LIDER:
                led_member_ids.update(m.user_id for m in membership.team.members if m.user_id != user.id)

        return cls(
            user_id=user.id,
            role=user.role,
            email=user.email,
            full_name=user.full_name,
            permissions=frozenset(permissions),
            team_ids=frozenset(team_ids),
            led_member_ids=frozenset(led_member_ids),
        )


def load_actor_context() -> None:
    g.actor = ActorContext.anonymous()
    if not current_user.is_authenticated:
        return
    g.actor = ActorContext.for_user(current_user)


def current_actor() -> ActorContext:
    return getattr(g, "actor", None) or ActorContext.anonymous()
