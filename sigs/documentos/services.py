from __future__ import annotations

from datetime import datetime

from flask import current_app
from werkzeug.datastructures import FileStorage

from sigs.core.context import ActorContext
from sigs.core.extensions import db
from sigs.core.models import (
    DOCUMENT_STATE_DELETED,
    Claim,
    ClaimHistory,
    Document,
    DocumentState,
    Policy,
    PolicyHistory,
)
from sigs.core.permissions import require_permission
from sigs.core.results import (
    ActionResult,
    InvalidTransition,
    ListResult,
    NotFound,
    PartialFailure,
    ValidationFailed,
    service_boundary,
)
from sigs.core.storage import get_storage
from sigs.core.utils import isoformat, utcnow

# owner kind -> (read permission, write permission)
OWNER_PERMISSIONS: dict[str, tuple[str, str]] = {
    "poliza": ("polizas.ver", "polizas.editar"),
    "siniestro": ("siniestros.ver", "siniestros.editar"),
}


def serialize_document(document: Document, state: str | None = None) -> dict[str, object]:
    return {
        "id": document.id,
        "owner_kind": document.owner_kind,
        "owner_id": document.owner_id,
        "doc_type": document.doc_type,
        "file_name": document.file_name,
        "size_bytes": document.size_bytes,
        "content_type": document.content_type,
        "state": state or document.state.value,
        "uploaded_by_user_id": document.uploaded_by_user_id,
        "uploaded_at": isoformat(document.uploaded_at),
        "discarded_by_user_id": document.discarded_by_user_id,
        "discarded_at": isoformat(document.discarded_at),
    }


def _owner_permissions(owner_kind: str) -> tuple[str, str]:
    try:
        return OWNER_PERMISSIONS[owner_kind]
    except KeyError as exc:
        raise ValidationFailed(f"Tipo de propietario invalido: {owner_kind}") from exc


def _resolve_owner(owner_kind: str, owner_id: int) -> Policy | Claim:
    model = Policy if owner_kind == "poliza" else Claim
    owner = db.session.get(model, owner_id)
    if owner is None:
        raise NotFound("Poliza no encontrada" if owner_kind == "poliza" else "Siniestro no encontrado")
    return owner


def _get_document(doc_id: int) -> Document:
    document = db.session.get(Document, doc_id)
    if document is None:
        raise NotFound("Documento no encontrado")
    return document


def _log_document_event(document: Document, action: str, note: str, user_id: int | None) -> None:
    if document.policy_id is not None:
        db.session.add(PolicyHistory(policy_id=document.policy_id, action=action, note=note, user_id=user_id))
    else:
        db.session.add(ClaimHistory(claim_id=document.claim_id, action=action, note=note, user_id=user_id))


def purge_storage_objects(keys: list[str]) -> list[str]:
    """Remove storage objects whose rows are already gone. Returns the keys left behind."""
    storage = get_storage()
    orphaned: list[str] = []
    for key in keys:
        try:
            storage.remove(key)
        except Exception as exc:  # any backend failure leaves the object orphaned
            current_app.logger.warning("Objeto huerfano en almacenamiento %s: %s", key, exc)
            orphaned.append(key)
    return orphaned


@service_boundary
def upload_document(
    actor: ActorContext,
    owner_kind: str,
    owner_id: int,
    file_obj: FileStorage | None,
    doc_type: str = "OTRO",
) -> ActionResult:
    _read, write = _owner_permissions(owner_kind)
    require_permission(actor, write)
    owner = _resolve_owner(owner_kind, owner_id)
    if not file_obj or not file_obj.filename:
        raise ValidationFailed("Debes seleccionar un fichero")

    key, size = get_storage().save(f"{owner_kind}/{owner.id}", file_obj)
    document = Document(
        policy_id=owner.id if owner_kind == "poliza" else None,
        claim_id=owner.id if owner_kind == "siniestro" else None,
        doc_type=(doc_type or "OTRO").strip().upper(),
        file_name=file_obj.filename,
        storage_key=key,
        size_bytes=size,
        content_type=file_obj.mimetype or "application/octet-stream",
        uploaded_by_user_id=actor.user_id,
    )
    db.session.add(document)
    db.session.flush()
    _log_document_event(document, "documento_subido", f"{document.doc_type}: {document.file_name}", actor.user_id)
    db.session.commit()
    return ActionResult.ok(serialize_document(document))


@service_boundary
def discard_document(actor: ActorContext, doc_id: int, now: datetime | None = None) -> ActionResult:
    require_permission(actor, "documentos.descartar")
    document = _get_document(doc_id)
    if document.state == DocumentState.DISCARDED:
        data = serialize_document(document)
        data["already_discarded"] = True
        return ActionResult.ok(data)

    document.state = DocumentState.DISCARDED
    document.discarded_by_user_id = actor.user_id
    document.discarded_at = now or utcnow()
    _log_document_event(document, "documento_descartado", f"{document.file_name}: activo -> descartado", actor.user_id)
    db.session.commit()
    data = serialize_document(document)
    data["already_discarded"] = False
    return ActionResult.ok(data)


@service_boundary
def restore_document(actor: ActorContext, doc_id: int) -> ActionResult:
    require_permission(actor, "documentos.restaurar")
    document = _get_document(doc_id)
    if document.state != DocumentState.DISCARDED:
        raise InvalidTransition("Solo se pueden restaurar documentos descartados")

    document.state = DocumentState.ACTIVE
    document.discarded_by_user_id = None
    document.discarded_at = None
    _log_document_event(document, "documento_restaurado", f"{document.file_name}: descartado -> activo", actor.user_id)
    db.session.commit()
    return ActionResult.ok(serialize_document(document))


@service_boundary
def permanently_delete_document(actor: ActorContext, doc_id: int) -> ActionResult:
    require_permission(actor, "documentos.eliminar")
    document = _get_document(doc_id)
    if document.state != DocumentState.DISCARDED:
        raise InvalidTransition("Solo se pueden eliminar documentos descartados")

    data = serialize_document(document, state=DOCUMENT_STATE_DELETED)
    key = document.storage_key
    _log_document_event(document, "documento_eliminado", f"{document.file_name}: descartado -> eliminado", actor.user_id)
    db.session.delete(document)
    db.session.commit()

    if purge_storage_objects([key]):
        raise PartialFailure(
            "Documento eliminado de BD pero fallo la eliminacion del archivo",
            data={**data, "orphaned_keys": [key]},
        )
    return ActionResult.ok(data)


@service_boundary
def list_active_documents(actor: ActorContext, owner_kind: str, owner_id: int) -> ListResult:
    read, _write = _owner_permissions(owner_kind)
    require_permission(actor, read)
    owner = _resolve_owner(owner_kind, owner_id)
    rows = [serialize_document(d) for d in sorted(owner.documents, key=lambda d: d.id) if d.state == DocumentState.ACTIVE]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


@service_boundary
def list_all_documents(actor: ActorContext, owner_kind: str, owner_id: int) -> ListResult:
    _owner_permissions(owner_kind)
    require_permission(actor, "documentos.restaurar")
    owner = _resolve_owner(owner_kind, owner_id)
    rows = [serialize_document(d) for d in sorted(owner.documents, key=lambda d: d.id)]
    return ListResult.of(rows, len(rows), 1, max(1, len(rows)))


def document_content(actor: ActorContext, doc_id: int) -> tuple[bytes, Document]:
    """Raw bytes for download. Discarded documents need `documentos.restaurar`, which defaults to admin."""
    document = _get_document(doc_id)
    read, _write = _owner_permissions(document.owner_kind)
    require_permission(actor, read)
    if document.state == DocumentState.DISCARDED:
        require_permission(actor, "documentos.restaurar")
    return get_storage().read(document.storage_key), document
