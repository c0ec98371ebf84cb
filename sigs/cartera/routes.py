from __future__ import annotations

from flask import g, request
from flask_login import login_required

from sigs.cartera import cartera_bp
from sigs.cartera.services import (
    cancel_policy,
    check_policy_edit,
    client_history,
    create_client,
    create_policy,
    delete_policy_permanently,
    get_client,
    get_policy,
    grant_policy_edit,
    list_clients,
    list_pending_validation,
    list_policies,
    list_policy_edit_grants,
    reject_policy,
    renew_policy,
    revoke_policy_edit,
    update_client,
    update_policy,
    validate_policy,
)
from sigs.core.results import json_result, page_args, request_payload


@cartera_bp.get("/clientes")
@login_required
def clients_index():
    page, page_size = page_args()
    filters = {
        "q": request.args.get("q", "").strip(),
        "executive_in_charge_id": request.args.get("executive_in_charge_id", "").strip(),
    }
    return json_result(list_clients(g.actor, filters, page, page_size))


@cartera_bp.post("/clientes")
@login_required
def clients_create():
    return json_result(create_client(g.actor, request_payload()), 201)


@cartera_bp.get("/clientes/<int:client_id>")
@login_required
def clients_detail(client_id: int):
    return json_result(get_client(g.actor, client_id))


@cartera_bp.patch("/clientes/<int:client_id>")
@login_required
def clients_update(client_id: int):
    return json_result(update_client(g.actor, client_id, request_payload()))


@cartera_bp.get("/clientes/<int:client_id>/historial")
@login_required
def clients_history(client_id: int):
    return json_result(client_history(g.actor, client_id))


@cartera_bp.get("/polizas")
@login_required
def policies_index():
    page, page_size = page_args()
    filters = {
        key: request.args.get(key, "").strip()
        for key in ("status", "ramo", "responsable_user_id", "q")
    }
    return json_result(list_policies(g.actor, filters, page, page_size))


@cartera_bp.get("/polizas/pendientes")
@login_required
def policies_pending():
    page, page_size = page_args()
    return json_result(list_pending_validation(g.actor, page, page_size))


@cartera_bp.post("/polizas")
@login_required
def policies_create():
    return json_result(create_policy(g.actor, request_payload()), 201)


@cartera_bp.get("/polizas/<int:policy_id>")
@login_required
def policies_detail(policy_id: int):
    return json_result(get_policy(g.actor, policy_id))


@cartera_bp.patch("/polizas/<int:policy_id>")
@login_required
def policies_update(policy_id: int):
    return json_result(update_policy(g.actor, policy_id, request_payload()))


@cartera_bp.post("/polizas/<int:policy_id>/validar")
@login_required
def policies_validate(policy_id: int):
    return json_result(validate_policy(g.actor, policy_id))


@cartera_bp.post("/polizas/<int:policy_id>/rechazar")
@login_required
def policies_reject(policy_id: int):
    payload = request_payload()
    return json_result(reject_policy(g.actor, policy_id, str(payload.get("reason") or "")))


@cartera_bp.post("/polizas/<int:policy_id>/anular")
@login_required
def policies_cancel(policy_id: int):
    payload = request_payload()
    return json_result(cancel_policy(g.actor, policy_id, str(payload.get("note") or "")))


@cartera_bp.post("/polizas/<int:policy_id>/renovar")
@login_required
def policies_renew(policy_id: int):
    return json_result(renew_policy(g.actor, policy_id, request_payload()), 201)


@cartera_bp.delete("/polizas/<int:policy_id>")
@login_required
def policies_delete(policy_id: int):
    return json_result(delete_policy_permanently(g.actor, policy_id))


@cartera_bp.get("/polizas/<int:policy_id>/puede-editar")
@login_required
def policies_can_edit(policy_id: int):
    return json_result(check_policy_edit(g.actor, policy_id))


@cartera_bp.get("/polizas/<int:policy_id>/permisos")
@login_required
def policies_grants(policy_id: int):
    return json_result(list_policy_edit_grants(g.actor, policy_id))


@cartera_bp.post("/polizas/<int:policy_id>/permisos")
@login_required
def policies_grant(policy_id: int):
    payload = request_payload()
    result = grant_policy_edit(
        g.actor,
        policy_id,
        payload.get("user_id"),
        payload.get("hours"),
        str(payload.get("note") or ""),
    )
    return json_result(result, 201)


@cartera_bp.post("/polizas/permisos/<int:grant_id>/revocar")
@login_required
def policies_revoke_grant(grant_id: int):
    payload = request_payload()
    return json_result(revoke_policy_edit(g.actor, grant_id, str(payload.get("note") or "")))
