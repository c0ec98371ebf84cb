from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, event, inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from sigs.core.extensions import db
from sigs.core.utils import as_utc, utcnow


class Role(str, Enum):
    ADMIN = "admin"
    COMERCIAL = "comercial"
    AGENTE = "agente"
    SINIESTROS = "siniestros"
    COBRANZA = "cobranza"
    USUARIO = "usuario"
    INVITADO = "invitado"
    DESACTIVADO = "desactivado"


class TeamRole(str, Enum):
    LIDER = "lider"
    MIEMBRO = "miembro"


class ClientType(str, Enum):
    NATURAL = "natural"
    JURIDICA = "juridica"
    UNIPERSONAL = "unipersonal"


class Currency(str, Enum):
    BOB = "BOB"
    USD = "USD"


class PolicyStatus(str, Enum):
    PENDING = "pendiente"
    ACTIVE = "activa"
    REJECTED = "rechazada"
    CANCELLED = "cancelada"
    RENEWED = "renovada"


class GrantRevokeReason(str, Enum):
    RESUBMITTED = "resubmitted"
    SUPERSEDED = "superseded"
    EXPIRED = "expired"
    REVOKED = "revoked"


class GrantKind(str, Enum):
    REJECTION = "rechazo"
    MANUAL = "manual"


class ClaimStatusCategory(str, Enum):
    OPEN = "abierto"
    CLOSED = "cerrado"


class ClosureKind(str, Enum):
    RECHAZO = "rechazo"
    DECLINACION = "declinacion"
    INDEMNIZACION = "indemnizacion"


class DocumentState(str, Enum):
    ACTIVE = "activo"
    DISCARDED = "descartado"


# Reported once the row and its object are gone; never persisted.
DOCUMENT_STATE_DELETED = "eliminado"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[Role] = mapped_column(SAEnum(Role, name="user_role"), nullable=False, default=Role.INVITADO)
    phone: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    extra_permissions = relationship(
        "UserPermission",
        foreign_keys="UserPermission.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    team_memberships = relationship("TeamMember", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.role != Role.DESACTIVADO


class UserPermission(db.Model):
    # Per-user grants on top of the role defaults.
    __tablename__ = "user_permission"
    __table_args__ = (UniqueConstraint("user_id", "permission", name="uq_user_permission"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(db.String(60), nullable=False)
    granted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id], back_populates="extra_permissions")


class Team(db.Model):
    __tablename__ = "team"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(db.Model):
    __tablename__ = "team_member"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_member"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("team.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    team_role: Mapped[TeamRole] = mapped_column(
        SAEnum(TeamRole, name="team_role"),
        nullable=False,
        default=TeamRole.MIEMBRO,
    )
    joined_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="team_memberships")


class Client(db.Model):
    __tablename__ = "client"
    __table_args__ = (Index("ix_client_executive", "executive_in_charge_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    client_type: Mapped[ClientType] = mapped_column(
        SAEnum(ClientType, name="client_type"),
        nullable=False,
        default=ClientType.NATURAL,
    )
    name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    document_number: Mapped[str] = mapped_column(db.String(40), nullable=False, default="", index=True)
    phone: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    mobile: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    status: Mapped[str] = mapped_column(db.String(20), nullable=False, default="activo")
    executive_in_charge_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    executive_in_charge = relationship("User", foreign_keys=[executive_in_charge_id])
    policies = relationship("Policy", back_populates="client")
    history = relationship(
        "ClientHistory",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="ClientHistory.id",
    )


class ClientHistory(db.Model):
    __tablename__ = "client_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("client.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(db.String(40), nullable=False)
    detail: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    client = relationship("Client", back_populates="history")


class Policy(db.Model):
    __tablename__ = "policy"
    __table_args__ = (
        CheckConstraint("valid_to >= valid_from", name="ck_policy_validity_window"),
        CheckConstraint("premium >= 0", name="ck_policy_premium_positive"),
        Index("ix_policy_status", "status"),
        Index("ix_policy_responsable", "responsable_user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[str] = mapped_column(db.String(60), unique=True, nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey("client.id"), nullable=False, index=True)
    ramo: Mapped[str] = mapped_column(db.String(60), nullable=False)
    insurer: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    status: Mapped[PolicyStatus] = mapped_column(
        SAEnum(PolicyStatus, name="policy_status"),
        nullable=False,
        default=PolicyStatus.PENDING,
    )
    responsable_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    premium: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    currency: Mapped[Currency] = mapped_column(
        SAEnum(Currency, name="currency"),
        nullable=False,
        default=Currency.BOB,
    )
    valid_from: Mapped[date] = mapped_column(nullable=False)
    valid_to: Mapped[date] = mapped_column(nullable=False)
    validated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    rejected_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    renewed_from_id: Mapped[int | None] = mapped_column(ForeignKey("policy.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    client = relationship("Client", back_populates="policies")
    responsable = relationship("User", foreign_keys=[responsable_user_id])
    created_by = relationship("User", foreign_keys=[created_by_user_id])
    validated_by = relationship("User", foreign_keys=[validated_by_user_id])
    rejected_by = relationship("User", foreign_keys=[rejected_by_user_id])
    renewed_from = relationship("Policy", remote_side=[id], uselist=False)
    documents = relationship("Document", back_populates="policy", cascade="all, delete-orphan")
    claims = relationship("Claim", back_populates="policy")
    edit_grants = relationship(
        "EditGrant",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="EditGrant.id",
    )
    history = relationship(
        "PolicyHistory",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="PolicyHistory.id",
    )

    @validates("premium")
    def _validate_premium(self, _key: str, value: Decimal) -> Decimal:
        if value is not None and Decimal(value) < 0:
            raise ValueError("La prima no puede ser negativa")
        return value


class EditGrant(db.Model):
    # Time-boxed right to edit one policy: the creator's correction window after a
    # rejection, or a manual grant from an admin or team leader.
    __tablename__ = "edit_grant"
    __table_args__ = (Index("ix_edit_grant_policy_holder", "policy_id", "holder_user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policy.id"), nullable=False)
    holder_user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    kind: Mapped[GrantKind] = mapped_column(
        SAEnum(GrantKind, name="edit_grant_kind"),
        default=GrantKind.REJECTION,
        nullable=False,
    )
    granted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    revoke_reason: Mapped[GrantRevokeReason | None] = mapped_column(
        SAEnum(GrantRevokeReason, name="grant_revoke_reason"),
        nullable=True,
    )
    revoked_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    note: Mapped[str] = mapped_column(db.Text, nullable=False, default="")

    policy = relationship("Policy", back_populates="edit_grants")
    holder = relationship("User", foreign_keys=[holder_user_id])

    def is_live(self, now: datetime) -> bool:
        return self.revoked_at is None and as_utc(now) < as_utc(self.expires_at)

    def revoke(self, reason: GrantRevokeReason, now: datetime, user_id: int | None = None) -> None:
        if self.revoked_at is None:
            self.revoked_at = now
            self.revoke_reason = reason
            self.revoked_by_user_id = user_id


class PolicyHistory(db.Model):
    __tablename__ = "policy_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policy.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(db.String(40), nullable=False)
    from_status: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    to_status: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    note: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    policy = relationship("Policy", back_populates="history")


class ClaimStatus(db.Model):
    # Configurable claim status catalog; closed entries carry their closure kind.
    __tablename__ = "claim_status"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(db.String(40), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(db.String(80), nullable=False)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)
    active: Mapped[bool] = mapped_column(nullable=False, default=True)
    category: Mapped[ClaimStatusCategory] = mapped_column(
        SAEnum(ClaimStatusCategory, name="claim_status_category"),
        nullable=False,
        default=ClaimStatusCategory.OPEN,
    )
    closure_kind: Mapped[ClosureKind | None] = mapped_column(
        SAEnum(ClosureKind, name="closure_kind"),
        nullable=True,
    )

    @property
    def is_open(self) -> bool:
        return self.category == ClaimStatusCategory.OPEN


class Coverage(db.Model):
    __tablename__ = "coverage"
    __table_args__ = (UniqueConstraint("ramo", "name", name="uq_coverage_ramo_name"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    ramo: Mapped[str] = mapped_column(db.String(60), nullable=False, index=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    is_custom: Mapped[bool] = mapped_column(nullable=False, default=False)
    active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


claim_coverage = db.Table(
    "claim_coverage",
    db.Column("claim_id", ForeignKey("claim.id"), primary_key=True),
    db.Column("coverage_id", ForeignKey("coverage.id"), primary_key=True),
)


class Claim(db.Model):
    __tablename__ = "claim"
    __table_args__ = (
        Index("ix_claim_status", "status_id"),
        Index("ix_claim_responsable", "responsable_user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policy.id"), nullable=False, index=True)
    status_id: Mapped[int] = mapped_column(ForeignKey("claim_status.id"), nullable=False)
    responsable_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    occurred_on: Mapped[date] = mapped_column(nullable=False)
    reported_on: Mapped[date] = mapped_column(nullable=False)
    location: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    reserve_amount: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    currency: Mapped[Currency] = mapped_column(
        SAEnum(Currency, name="currency"),
        nullable=False,
        default=Currency.BOB,
    )
    closure_kind: Mapped[ClosureKind | None] = mapped_column(SAEnum(ClosureKind, name="closure_kind"), nullable=True)
    closure_reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    claimed_amount: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    deductible: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    is_commercial_payment: Mapped[bool] = mapped_column(nullable=False, default=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    last_activity_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    policy = relationship("Policy", back_populates="claims")
    status = relationship("ClaimStatus")
    responsable = relationship("User", foreign_keys=[responsable_user_id])
    created_by = relationship("User", foreign_keys=[created_by_user_id])
    coverages = relationship("Coverage", secondary=claim_coverage, order_by="Coverage.name")
    documents = relationship("Document", back_populates="claim", cascade="all, delete-orphan")
    observations = relationship(
        "ClaimObservation",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimObservation.id",
    )
    history = relationship(
        "ClaimHistory",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimHistory.id",
    )

    def needs_attention(self, now: datetime, days: int) -> bool:
        if self.status is None or not self.status.is_open:
            return False
        return as_utc(self.last_activity_at) <= as_utc(now) - timedelta(days=days)


class ClaimHistory(db.Model):
    __tablename__ = "claim_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claim.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(db.String(40), nullable=False)
    from_status: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    to_status: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    note: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    claim = relationship("Claim", back_populates="history")


class ClaimObservation(db.Model):
    __tablename__ = "claim_observation"

    id: Mapped[int] = mapped_column(primary_key=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claim.id"), nullable=False, index=True)
    body: Mapped[str] = mapped_column(db.Text, nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    claim = relationship("Claim", back_populates="observations")
    author = relationship("User")


class Document(db.Model):
    __tablename__ = "document"
    __table_args__ = (
        CheckConstraint(
            "(policy_id IS NULL AND claim_id IS NOT NULL) OR (policy_id IS NOT NULL AND claim_id IS NULL)",
            name="ck_document_single_owner",
        ),
        Index("ix_document_state", "state"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    policy_id: Mapped[int | None] = mapped_column(ForeignKey("policy.id"), nullable=True, index=True)
    claim_id: Mapped[int | None] = mapped_column(ForeignKey("claim.id"), nullable=True, index=True)
    doc_type: Mapped[str] = mapped_column(db.String(60), nullable=False, default="OTRO")
    file_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(db.String(500), nullable=False)
    size_bytes: Mapped[int] = mapped_column(nullable=False, default=0)
    content_type: Mapped[str] = mapped_column(db.String(120), nullable=False, default="application/octet-stream")
    state: Mapped[DocumentState] = mapped_column(
        SAEnum(DocumentState, name="document_state"),
        nullable=False,
        default=DocumentState.ACTIVE,
    )
    uploaded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    discarded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    discarded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    policy = relationship("Policy", back_populates="documents")
    claim = relationship("Claim", back_populates="documents")

    @property
    def owner_kind(self) -> str:
        return "poliza" if self.policy_id is not None else "siniestro"

    @property
    def owner_id(self) -> int:
        return self.policy_id if self.policy_id is not None else self.claim_id


def _reject_history_update(_mapper, _connection, _target) -> None:
    raise ValueError("Los registros de historial son inmutables")


for _history_model in (PolicyHistory, ClaimHistory, ClientHistory):
    event.listen(_history_model, "before_update", _reject_history_update)


@event.listens_for(Claim, "before_update")
def claim_before_update(_mapper, _connection, target: Claim) -> None:
    # Attention tracking counts any change to the claim row as activity.
    state = inspect(target)
    if not state.attrs.last_activity_at.history.has_changes():
        target.last_activity_at = utcnow()


DEFAULT_CLAIM_STATUSES: list[dict[str, object]] = [
    {"code": "abierto", "name": "Abierto", "sort_order": 1, "category": ClaimStatusCategory.OPEN},
    {"code": "en_revision", "name": "En revision", "sort_order": 2, "category": ClaimStatusCategory.OPEN},
    {
        "code": "documentacion_pendiente",
        "name": "Documentacion pendiente",
        "sort_order": 3,
        "category": ClaimStatusCategory.OPEN,
    },
    {
        "code": "rechazado",
        "name": "Rechazado",
        "sort_order": 90,
        "category": ClaimStatusCategory.CLOSED,
        "closure_kind": ClosureKind.RECHAZO,
    },
    {
        "code": "declinado",
        "name": "Declinado",
        "sort_order": 91,
        "category": ClaimStatusCategory.CLOSED,
        "closure_kind": ClosureKind.DECLINACION,
    },
    {
        "code": "concluido",
        "name": "Concluido",
        "sort_order": 92,
        "category": ClaimStatusCategory.CLOSED,
        "closure_kind": ClosureKind.INDEMNIZACION,
    },
]

DEFAULT_COVERAGES: dict[str, list[str]] = {
    "automotores": ["Responsabilidad civil", "Danos propios", "Robo total", "Accidentes personales"],
    "incendio": ["Incendio y aliados", "Terremoto", "Danos por agua"],
    "salud": ["Gastos medicos", "Hospitalizacion"],
}

DEMO_USERS: list[tuple[str, str, Role, str]] = [
    ("admin@patria.local", "Admin SIGS", Role.ADMIN, "admin123"),
    ("comercial@patria.local", "Carla Comercial", Role.COMERCIAL, "comercial123"),
    ("agente@patria.local", "Andres Agente", Role.AGENTE, "agente123"),
    ("siniestros@patria.local", "Sonia Siniestros", Role.SINIESTROS, "siniestros123"),
    ("cobranza@patria.local", "Cesar Cobranza", Role.COBRANZA, "cobranza123"),
    ("usuario@patria.local", "Ursula Usuario", Role.USUARIO, "usuario123"),
]


def seed_demo_data(session) -> None:
    users: dict[Role, User] = {}
    for email, full_name, role, password in DEMO_USERS:
        user = User(
            email=email,
            full_name=full_name,
            role=role,
            password_hash=generate_password_hash(password),
        )
        users[role] = user
    session.add_all(users.values())
    session.flush()

    team = Team(name="Equipo La Paz", description="Cartera comercial La Paz")
    session.add(team)
    session.flush()
    session.add_all(
        [
            TeamMember(team_id=team.id, user_id=users[Role.COMERCIAL].id, team_role=TeamRole.LIDER),
            TeamMember(team_id=team.id, user_id=users[Role.AGENTE].id, team_role=TeamRole.MIEMBRO),
        ]
    )

    for row in DEFAULT_CLAIM_STATUSES:
        session.add(ClaimStatus(**row))
    for ramo, names in DEFAULT_COVERAGES.items():
        for name in names:
            session.add(Coverage(ramo=ramo, name=name))

    juan = Client(
        client_type=ClientType.NATURAL,
        name="Juan Perez Mamani",
        document_number="4821937",
        mobile="71234567",
        email="juan.perez@example.com",
        executive_in_charge_id=users[Role.AGENTE].id,
        created_by_user_id=users[Role.AGENTE].id,
    )
    empresa = Client(
        client_type=ClientType.JURIDICA,
        name="Transportes Illimani SRL",
        document_number="1020304025",
        phone="22441122",
        email="",
        executive_in_charge_id=users[Role.COMERCIAL].id,
        created_by_user_id=users[Role.COMERCIAL].id,
    )
    session.add_all([juan, empresa])
    session.flush()

    session.add_all(
        [
            Policy(
                number="AUT-0001",
                client_id=juan.id,
                ramo="automotores",
                insurer="Nacional Seguros",
                status=PolicyStatus.ACTIVE,
                responsable_user_id=users[Role.AGENTE].id,
                created_by_user_id=users[Role.AGENTE].id,
                premium=Decimal("3500.00"),
                currency=Currency.BOB,
                valid_from=date(2026, 1, 1),
                valid_to=date(2026, 12, 31),
                validated_by_user_id=users[Role.ADMIN].id,
                validated_at=utcnow(),
            ),
            Policy(
                number="INC-0001",
                client_id=empresa.id,
                ramo="incendio",
                insurer="Alianza Seguros",
                status=PolicyStatus.PENDING,
                responsable_user_id=users[Role.COMERCIAL].id,
                created_by_user_id=users[Role.COMERCIAL].id,
                premium=Decimal("1200.00"),
                currency=Currency.USD,
                valid_from=date(2026, 3, 1),
                valid_to=date(2027, 2, 28),
            ),
        ]
    )
    session.commit()
