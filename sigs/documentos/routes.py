from __future__ import annotations

from io import BytesIO

from flask import g, jsonify, request, send_file
from flask_login import login_required

from sigs.core.results import ActionResult, ServiceError, json_result
from sigs.core.storage import StorageError
from sigs.documentos import documentos_bp
from sigs.documentos.services import (
    discard_document,
    document_content,
    list_active_documents,
    list_all_documents,
    permanently_delete_document,
    restore_document,
    upload_document,
)

OWNER_RULE = "/<any(poliza, siniestro):owner_kind>/<int:owner_id>"


@documentos_bp.post(OWNER_RULE)
@login_required
def upload(owner_kind: str, owner_id: int):
    result = upload_document(
        g.actor,
        owner_kind,
        owner_id,
        request.files.get("file"),
        request.form.get("doc_type", "OTRO"),
    )
    return json_result(result, 201)


@documentos_bp.get(OWNER_RULE)
@login_required
def active_index(owner_kind: str, owner_id: int):
    return json_result(list_active_documents(g.actor, owner_kind, owner_id))


@documentos_bp.get(OWNER_RULE + "/todos")
@login_required
def all_index(owner_kind: str, owner_id: int):
    return json_result(list_all_documents(g.actor, owner_kind, owner_id))


@documentos_bp.post("/<int:doc_id>/descartar")
@login_required
def discard(doc_id: int):
    return json_result(discard_document(g.actor, doc_id))


@documentos_bp.post("/<int:doc_id>/restaurar")
@login_required
def restore(doc_id: int):
    return json_result(restore_document(g.actor, doc_id))


@documentos_bp.delete("/<int:doc_id>")
@login_required
def permanent_delete(doc_id: int):
    return json_result(permanently_delete_document(g.actor, doc_id))


@documentos_bp.get("/<int:doc_id>/descargar")
@login_required
def download(doc_id: int):
    try:
        content, document = document_content(g.actor, doc_id)
    except ServiceError as exc:
        return json_result(ActionResult.fail(exc))
    except StorageError as exc:
        return jsonify({"success": False, "error": str(exc), "errorKind": "not_found"}), 404
    return send_file(
        BytesIO(content),
        mimetype=document.content_type,
        as_attachment=True,
        download_name=document.file_name,
    )
