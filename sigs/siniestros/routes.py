from __future__ import annotations

from flask import g, request
from flask_login import login_required

from sigs.core.results import json_result, page_args, request_payload
from sigs.siniestros import siniestros_bp
from sigs.siniestros.services import (
    add_claim_observation,
    change_claim_status,
    close_claim,
    coverages_for_line,
    create_claim,
    delete_claim_permanently,
    get_claim,
    list_claim_statuses,
    list_claims,
    reassign_claim,
    search_active_policies,
)


@siniestros_bp.get("")
@login_required
def claims_index():
    page, page_size = page_args()
    filters = {
        key: request.args.get(key, "").strip()
        for key in ("status", "open_only", "responsable_user_id", "q")
    }
    return json_result(list_claims(g.actor, filters, page, page_size))


@siniestros_bp.post("")
@login_required
def claims_create():
    return json_result(create_claim(g.actor, request_payload()), 201)


@siniestros_bp.get("/estados")
@login_required
def statuses_index():
    return json_result(list_claim_statuses(g.actor))


@siniestros_bp.get("/coberturas/<ramo>")
@login_required
def coverages_index(ramo: str):
    return json_result(coverages_for_line(g.actor, ramo))


@siniestros_bp.get("/polizas-activas")
@login_required
def active_policies_search():
    return json_result(search_active_policies(g.actor, request.args.get("q", "")))


@siniestros_bp.get("/<int:claim_id>")
@login_required
def claims_detail(claim_id: int):
    return json_result(get_claim(g.actor, claim_id))


@siniestros_bp.post("/<int:claim_id>/estado")
@login_required
def claims_change_status(claim_id: int):
    payload = request_payload()
    result = change_claim_status(
        g.actor,
        claim_id,
        str(payload.get("status") or ""),
        str(payload.get("note") or ""),
    )
    return json_result(result)


@siniestros_bp.post("/<int:claim_id>/cierre")
@login_required
def claims_close(claim_id: int):
    payload = request_payload()
    return json_result(close_claim(g.actor, claim_id, str(payload.get("closure_kind") or ""), payload))


@siniestros_bp.post("/<int:claim_id>/reasignar")
@login_required
def claims_reassign(claim_id: int):
    payload = request_payload()
    user_id = payload.get("user_id")
    result = reassign_claim(
        g.actor,
        claim_id,
        int(user_id) if str(user_id or "").isdigit() else None,
        str(payload.get("note") or ""),
    )
    return json_result(result)


@siniestros_bp.post("/<int:claim_id>/observaciones")
@login_required
def claims_observe(claim_id: int):
    payload = request_payload()
    return json_result(add_claim_observation(g.actor, claim_id, str(payload.get("body") or "")), 201)


@siniestros_bp.delete("/<int:claim_id>")
@login_required
def claims_delete(claim_id: int):
    return json_result(delete_claim_permanently(g.actor, claim_id))
