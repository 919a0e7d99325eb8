# backend/wms/routes/opname.py
"""
Stock opname (physical count) endpoints.

The in-progress session lives on the client as the "pending" map
returned by every call; each request rebuilds the session against the
current batch groups.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor, require_admin
from ..errors import ValidationError
from ..models.opname import REQUEST_STATUSES
from ..services import opname_service
from ..time_utils import default_reference_date, utcnow
from ..validation import coerce_bool, coerce_date, coerce_int, require_fields


opname_bp = Blueprint("opname", __name__, url_prefix="/api/opname")


def _default_ref_date():
    return default_reference_date(utcnow().date(), current_app.config["WMS_DEFAULT_OPNAME_REF_DAY"])


def _session_from(payload: dict) -> opname_service.OpnameSession:
    pending = payload.get("pending") or {}
    if not isinstance(pending, dict):
        raise ValidationError("pending must be an object keyed by group key")
    groups = opname_service.load_groups()
    return opname_service.OpnameSession.from_payload(groups, pending, default_ref_date=_default_ref_date())


def _session_body(session: opname_service.OpnameSession, **extra) -> dict:
    body = {
        "pending": session.to_payload(),
        "summary": [line.to_dict() for line in session.summary()],
    }
    body.update(extra)
    return body


@opname_bp.get("/groups")
def list_groups():
    groups = opname_service.load_groups(request.args.get("search"))
    return {
        "groups": [grp.to_dict() for grp in groups],
        "default_ref_date": _default_ref_date().isoformat(),
    }, 200


@opname_bp.post("/edit")
@require_actor
def edit_count():
    """
    Update one group of the pending session.

    Request body:
    {
        "pending": {...},
        "key": "PRODUCT|BATCH",
        "qty": int (optional),
        "note": str (optional),
        "is_initial": bool (optional),
        "ref_date": "YYYY-MM-DD" (optional),
        "reset": bool (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "key")
    session = _session_from(payload)
    key = payload["key"]

    if coerce_bool(payload.get("reset", False)):
        session.group(key)
        session.reset(key)
        return _session_body(session), 200

    if "qty" in payload:
        session.set_count(key, coerce_int(payload["qty"], "qty", minimum=0))
    if "note" in payload:
        session.set_note(key, payload["note"])
    if "is_initial" in payload:
        session.set_initial(key, coerce_bool(payload["is_initial"]))
    if "ref_date" in payload:
        session.set_reference_date(key, coerce_date(payload["ref_date"], "ref_date"))
    return _session_body(session), 200


@opname_bp.post("/scan")
@require_actor
def scan():
    """
    Request body: {"pending": {...}, "codes": [str] | str}

    Each recognised code adds one to its group. Unrecognised codes are
    returned in "unmatched".
    """
    payload = request.get_json(silent=True) or {}
    session = _session_from(payload)
    unmatched = session.record_scan(payload.get("codes"))
    if unmatched:
        current_app.logger.info("Opname scan by %s: %d unmatched codes", g.actor.username, len(unmatched))
    return _session_body(session, unmatched=unmatched), 200


@opname_bp.post("/summary")
@require_actor
def summary():
    session = _session_from(request.get_json(silent=True) or {})
    return _session_body(session), 200


@opname_bp.post("/commit")
@require_actor
def commit():
    """
    Admins apply the counted differences immediately (201, mode APPLIED).
    Other users file one PENDING request per line (201, mode SUBMITTED).
    A line whose group changed since it was read returns 409.
    """
    session = _session_from(request.get_json(silent=True) or {})
    result = opname_service.commit(session, g.actor)
    current_app.logger.info(
        "Opname %s by %s: %d lines",
        result["mode"].lower(),
        g.actor.username,
        len(result.get("lines") or result.get("requests") or []),
    )
    return result, 201


@opname_bp.get("/requests")
@require_actor
def list_requests():
    status = request.args.get("status")
    if status and status not in REQUEST_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(REQUEST_STATUSES)}")
    return {"requests": [r.to_dict() for r in opname_service.list_requests(status)]}, 200


@opname_bp.post("/requests/<int:request_id>/approve")
@require_actor
@require_admin
def approve_request(request_id: int):
    result = opname_service.approve_request(request_id, g.actor)
    current_app.logger.info("Opname request %d approved by %s", request_id, g.actor.username)
    return result, 200


@opname_bp.post("/requests/<int:request_id>/reject")
@require_actor
@require_admin
def reject_request(request_id: int):
    payload = request.get_json(silent=True) or {}
    req = opname_service.reject_request(request_id, g.actor, payload.get("reason"))
    current_app.logger.info("Opname request %d rejected by %s", request_id, g.actor.username)
    return req.to_dict(), 200
