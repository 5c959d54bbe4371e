"""
Change Request Service — influencer schedule change requests.

Storage is event-sourced in the campaign row's ``log_events`` column
(a JSON array shared with other campaign events):

    change_request_created   → request appears as "pending"
    change_request_approved  → status "approved", dates applied to the row
    change_request_rejected  → status "rejected"

The request list is a fold of those events grouped by request_id. The
older ``requests_dashboard`` column (a JSON array of request snapshots)
is read only for ids that have no events, and is never written.

A request moves out of "pending" exactly once; answering it again is a
ConflictError (HTTP 409).

Usage:
    from app.services import change_request_service as crs
    req = crs.create_request({...})["request"]
    crs.respond_to_request(req["id"], "approved", admin_id="admin")
"""

import logging
import secrets
import string
from datetime import datetime, timezone

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.campaign_assembler import influencer_name_of, iso_date_or_none
from app.services.registry import get_services
from app.services.row_store import parse_json_array
from app.services.sheet_schema import CAMPAIGNS_SHEET

logger = logging.getLogger(__name__)

REQUEST_TYPES = ("plan_date_change", "draft_date_change", "live_date_change")
RESPONSE_STATUSES = ("approved", "rejected")

EVENT_CREATED = "change_request_created"
EVENT_APPROVED = "change_request_approved"
EVENT_REJECTED = "change_request_rejected"
_REQUEST_EVENTS = (EVENT_CREATED, EVENT_APPROVED, EVENT_REJECTED)

# requestedChanges[].field → campaign column written on approval
FIELD_COLUMNS = {
    "planDate": "date_plan",
    "draftDate": "date_draft",
    "liveDate": "date_live",
}

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_request_id() -> str:
    ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"req_{ms}_{suffix}"


# ── Fold ─────────────────────────────────────────────────────────────────


def _fold_events(
    events: list, campaign_id: str, influencer_id: str, seed: dict[str, dict] | None = None,
) -> dict[str, dict]:
    """Rebuild request aggregates from one row's log_events.

    *seed* holds legacy requests so that responses to them fold too.
    """
    requests: dict[str, dict] = dict(seed or {})
    for event in events:
        if not isinstance(event, dict) or event.get("event_type") not in _REQUEST_EVENTS:
            continue
        rid = event.get("request_id")
        if not rid:
            continue
        if event["event_type"] == EVENT_CREATED:
            requests[rid] = {
                "id": rid,
                "campaignId": campaign_id,
                "influencerId": event.get("influencer_id") or influencer_id,
                "influencerName": event.get("influencer_name", ""),
                "type": event.get("request_type", ""),
                "title": event.get("title", ""),
                "description": event.get("description", ""),
                "requestedChanges": event.get("requested_changes") or [],
                "status": "pending",
                "createdAt": event.get("timestamp"),
                "updatedAt": event.get("timestamp"),
            }
            continue

        req = requests.get(rid)
        if req is None or req["status"] != "pending":
            # Responses without a creation event, or repeated responses, are ignored
            continue
        req["status"] = "approved" if event["event_type"] == EVENT_APPROVED else "rejected"
        req["updatedAt"] = event.get("timestamp")
        admin = event.get("admin_response") or {}
        req["adminResponse"] = {
            "adminId": admin.get("admin_id", ""),
            "adminName": admin.get("admin_name", ""),
            "comment": admin.get("comment", ""),
            "respondedAt": admin.get("responded_at") or event.get("timestamp"),
        }
        if event.get("applied_changes"):
            req["appliedChanges"] = event["applied_changes"]
    return requests


def _legacy_requests(raw, campaign_id: str, influencer_id: str) -> list[dict]:
    legacy = []
    for item in parse_json_array(raw):
        if not isinstance(item, dict) or not item.get("id"):
            continue
        req = dict(item)
        req.setdefault("campaignId", campaign_id)
        req.setdefault("influencerId", influencer_id)
        req.setdefault("status", "pending")
        req.setdefault("requestedChanges", [])
        req["legacy"] = True
        legacy.append(req)
    return legacy


def _requests_for_rows(rows: list[dict]) -> list[dict]:
    result = []
    for row in rows:
        cid = (row.get("id_campaign") or "").strip()
        iid = (row.get("id_influencer") or "").strip()
        if not cid:
            continue
        legacy = {r["id"]: r for r in _legacy_requests(row.get("requests_dashboard"), cid, iid)}
        result.extend(_fold_events(parse_json_array(row.get("log_events")), cid, iid, seed=legacy).values())
    return result


def _rows(influencer_id: str | None = None, force_refresh: bool = False) -> list[dict]:
    return get_services().store.fetch_columns(
        ["id_campaign", "id_influencer", "name", "インフルエンサー名", "influencer_name",
         "log_events", "requests_dashboard"],
        filter_influencer_id=influencer_id,
        sheet=CAMPAIGNS_SHEET,
        force_refresh=force_refresh,
    )


# ── Public API ───────────────────────────────────────────────────────────


def list_requests(
    campaign_id: str | None = None,
    influencer_id: str | None = None,
    status: str | None = None,
) -> list[dict]:
    """All change requests matching the filters, newest first."""
    requests = _requests_for_rows(_rows(influencer_id))
    if campaign_id:
        requests = [r for r in requests if r.get("campaignId") == campaign_id]
    if status:
        requests = [r for r in requests if r.get("status") == status]
    requests.sort(key=lambda r: str(r.get("createdAt") or ""), reverse=True)
    return requests


def _validate_changes(request_type: str, changes) -> list[dict]:
    if not isinstance(changes, list) or not changes:
        raise ValidationError("requestedChanges must be a non-empty list",
                              details={"requestedChanges": "required"})
    cleaned = []
    for change in changes:
        if not isinstance(change, dict) or not change.get("field"):
            raise ValidationError("Each requested change needs a 'field'",
                                  details={"requestedChanges": change})
        item = {
            "field": change["field"],
            "currentValue": change.get("currentValue", ""),
            "newValue": change.get("newValue", ""),
        }
        if item["field"] in FIELD_COLUMNS:
            iso = iso_date_or_none(item["newValue"])
            if iso is None:
                raise ValidationError(f"Invalid date for {item['field']}",
                                      details={item["field"]: item["newValue"]})
            item["newValue"] = iso
        cleaned.append(item)
    return cleaned


def create_request(data: dict) -> dict:
    """Create a pending request by appending a change_request_created event.

    Required: campaignId, influencerId, type, title, requestedChanges.
    """
    required = ("campaignId", "influencerId", "type", "title", "requestedChanges")
    missing = [k for k in required if not data.get(k)]
    if missing:
        raise ValidationError("Missing required fields", details={k: "required" for k in missing})
    if data["type"] not in REQUEST_TYPES:
        raise ValidationError(f"Invalid request type '{data['type']}'",
                              details={"type": list(REQUEST_TYPES)})
    changes = _validate_changes(data["type"], data["requestedChanges"])

    campaign_id = str(data["campaignId"]).strip()
    influencer_id = str(data["influencerId"]).strip()
    store = get_services().store
    store.require_write()

    influencer_name = (data.get("influencerName") or "").strip()
    if not influencer_name:
        for row in _rows(influencer_id):
            if (row.get("id_campaign") or "").strip() == campaign_id:
                influencer_name = influencer_name_of(row)
                break

    rid = new_request_id()
    now = _now()
    event = {
        "event_type": EVENT_CREATED,
        "timestamp": now,
        "request_id": rid,
        "request_type": data["type"],
        "title": data["title"],
        "description": data.get("description") or "",
        "requested_changes": changes,
        "influencer_id": influencer_id,
        "influencer_name": influencer_name,
        "status": "pending",
    }
    store.append_json_log_entry(
        CAMPAIGNS_SHEET, ("id_campaign", campaign_id), "log_events", event,
        match={"id_influencer": influencer_id},
    )
    logger.info("Change request %s created", rid,
                extra={"campaign_id": campaign_id, "influencer_id": influencer_id, "event_type": EVENT_CREATED})

    request = _fold_events([event], campaign_id, influencer_id)[rid]
    return {"request": request, "message": "申請が送信されました。管理者の承認をお待ちください。"}


def get_request(request_id: str, force_refresh: bool = False) -> dict:
    for req in _requests_for_rows(_rows(force_refresh=force_refresh)):
        if req["id"] == request_id:
            return req
    raise NotFoundError(resource="ChangeRequest", resource_id=request_id)


def respond_to_request(
    request_id: str,
    status: str,
    admin_id: str,
    admin_name: str = "",
    comment: str = "",
) -> dict:
    """Approve or reject a pending request.

    Approval writes the requested dates into the campaign row in the
    same batch as the event.

    Raises:
        ValidationError: status not approved/rejected.
        NotFoundError: unknown request id.
        ConflictError: the request was already answered.
    """
    if not request_id or not status or not admin_id:
        raise ValidationError("Missing required fields")
    if status not in RESPONSE_STATUSES:
        raise ValidationError('Invalid status. Must be "approved" or "rejected"')

    store = get_services().store
    store.require_write()
    req = get_request(request_id, force_refresh=True)
    if req["status"] != "pending":
        raise ConflictError("ChangeRequest", "status", req["status"])

    now = _now()
    applied = {}
    if status == "approved":
        for change in req.get("requestedChanges") or []:
            column = FIELD_COLUMNS.get(change.get("field"))
            if column:
                applied[column] = change.get("newValue", "")

    event = {
        "event_type": EVENT_APPROVED if status == "approved" else EVENT_REJECTED,
        "timestamp": now,
        "request_id": request_id,
        "status": status,
        "admin_response": {
            "admin_id": admin_id,
            "admin_name": admin_name or "",
            "comment": comment or "",
            "responded_at": now,
        },
    }
    if applied:
        event["applied_changes"] = applied

    store.append_json_log_entry(
        CAMPAIGNS_SHEET, ("id_campaign", req["campaignId"]), "log_events", event,
        extra_writes=applied or None,
        match={"id_influencer": req["influencerId"]} if req.get("influencerId") else None,
    )
    logger.info("Change request %s %s by %s", request_id, status, admin_id,
                extra={"campaign_id": req["campaignId"], "event_type": event["event_type"]})

    updated = dict(req)
    updated.update({
        "status": status,
        "updatedAt": now,
        "adminResponse": {
            "adminId": admin_id,
            "adminName": admin_name or "",
            "comment": comment or "",
            "respondedAt": now,
        },
    })
    if applied:
        updated["appliedChanges"] = applied
    updated.pop("legacy", None)
    message = "申請を承認しました" if status == "approved" else "申請を却下しました"
    return {"request": updated, "message": message}
