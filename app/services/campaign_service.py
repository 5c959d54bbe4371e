"""
Campaign Workflow Service

Reads campaigns from the sheet and applies every status-changing
operation:

    list_campaigns()        all campaigns, or one influencer's
    update_status()         direct override, accepts any enumerated status
    apply_admin_action()    approve/revise plan or draft
    submit_content()        influencer URL submission, status by table
    send_reminder()         log a reminder and notify via webhook
    submit_onboarding()     contract info survey
    touch_on_login()        stamp date_status_updated on untouched campaigns
    build_updates_feed()    derived admin activity feed
    get_chat_history()      stored chat transcript of a campaign

Every mutating operation returns a dict with a ``effects`` list of
PostCommitEffect. The caller dispatches them after the write; nothing
here talks to a webhook directly.

Each status change writes, in one batch:
    status_dashboard, date_status_updated, log_status (+1 entry)
and optionally the submission URL column and a message_dashboard entry.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import NotFoundError, ValidationError
from app.services.campaign_assembler import (
    Campaign,
    assemble_campaign,
    assemble_campaigns,
    influencer_name_of,
    iso_date_or_none,
    parse_datetime,
)
from app.services.platform import platform_label
from app.services.registry import get_services
from app.services.row_store import parse_json_array
from app.services.side_effects import PostCommitEffect
from app.services.sheet_schema import CAMPAIGNS_SHEET
from app.services.status_machine import (
    ADMIN_ACTION_MESSAGES,
    URL_COLUMNS,
    CampaignStatus,
    coerce_status,
    resolve_admin_action,
    resolve_submission,
    status_label,
    status_or_default,
)
from app.integrations.webhook_gateway import (
    EVENT_CONTRACT_INFO,
    EVENT_REMINDER,
    EVENT_REVISION_REQUEST,
)

logger = logging.getLogger(__name__)

MAX_FEED_ITEMS = 10
ONBOARDING_STATUS = CampaignStatus.MEETING_SCHEDULING

_ITEM_TYPES = {
    "plan": "構成案",
    "draft": "初稿",
    "content": "動画アップロード",
    "trial": "トライアル",
    "meeting": "打ち合わせ",
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_key(campaign_id: str) -> tuple[str, str]:
    return ("id_campaign", str(campaign_id).strip())


def _match(influencer_id: str | None) -> dict | None:
    return {"id_influencer": str(influencer_id).strip()} if influencer_id else None


# ═══════════════════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════════════════


def fetch_campaign_rows(influencer_id: str | None = None, force_refresh: bool = False) -> list[dict]:
    return get_services().store.fetch_columns(
        None, filter_influencer_id=influencer_id, sheet=CAMPAIGNS_SHEET, force_refresh=force_refresh,
    )


def list_campaigns(influencer_id: str | None = None, force_refresh: bool = False) -> list[Campaign]:
    """Campaigns of one influencer, or all when *influencer_id* is None."""
    return assemble_campaigns(fetch_campaign_rows(influencer_id, force_refresh))


def _find_row(campaign_id: str, influencer_id: str | None = None, force_refresh: bool = False) -> dict:
    for row in fetch_campaign_rows(influencer_id, force_refresh=force_refresh):
        if (row.get("id_campaign") or "").strip() == str(campaign_id).strip():
            return row
    label = campaign_id if not influencer_id else f"{campaign_id} (id_influencer={influencer_id})"
    raise NotFoundError(resource="Campaign", resource_id=label)


def get_campaign(campaign_id: str, influencer_id: str | None = None) -> Campaign:
    return assemble_campaign(_find_row(campaign_id, influencer_id))


# ═══════════════════════════════════════════════════════════════════════════
# Status changes
# ═══════════════════════════════════════════════════════════════════════════


def _status_log_entry(old_status, new_status, source: str, **extra) -> dict:
    entry = {
        "old_status": old_status.value if isinstance(old_status, CampaignStatus) else (old_status or ""),
        "new_status": new_status.value,
        "timestamp": now_iso(),
        "source": source,
    }
    entry.update({k: v for k, v in extra.items() if v})
    return entry


def _commit_status_change(
    campaign_id: str,
    influencer_id: str | None,
    old_status,
    new_status: CampaignStatus,
    source: str,
    *,
    url_type: str | None = None,
    submitted_url: str | None = None,
    message: dict | None = None,
) -> str:
    """Write the status, its log entry and optional URL/message in one batch."""
    store = get_services().store
    updated_at = now_iso()
    extra_writes = {
        "status_dashboard": new_status.value,
        "date_status_updated": updated_at,
    }
    if submitted_url and url_type:
        column = URL_COLUMNS.get(url_type)
        if column is None:
            raise ValidationError("Invalid urlType", details={"urlType": url_type})
        extra_writes[column] = submitted_url

    entries = {"log_status": _status_log_entry(old_status, new_status, source, url_type=url_type)}
    if message:
        entries["message_dashboard"] = message

    store.append_json_log_entries(
        CAMPAIGNS_SHEET, _row_key(campaign_id), entries,
        extra_writes=extra_writes, match=_match(influencer_id),
    )
    logger.info(
        "Campaign status %s → %s (%s)",
        old_status.value if isinstance(old_status, CampaignStatus) else old_status,
        new_status.value, source,
        extra={"campaign_id": campaign_id, "influencer_id": influencer_id, "event_type": source},
    )
    return updated_at


def update_status(
    campaign_id: str,
    influencer_id: str,
    new_status: str,
    submitted_url: str | None = None,
    url_type: str | None = None,
) -> dict:
    """Set any enumerated status regardless of the current one.

    Raises:
        ValidationError: *new_status* is not a known status.
        WritePermissionError: read-only credentials (checked before any I/O).
        NotFoundError: no row for (campaign_id, influencer_id).
    """
    target = coerce_status(new_status)
    if target is None:
        raise ValidationError(f"Unknown status '{new_status}'", details={"newStatus": new_status})
    if url_type and url_type not in URL_COLUMNS:
        raise ValidationError("Invalid urlType", details={"urlType": url_type})

    store = get_services().store
    store.require_write()
    current = _find_row(campaign_id, influencer_id, force_refresh=True)
    old_status = coerce_status(current.get("status_dashboard")) or current.get("status_dashboard")

    updated_at = _commit_status_change(
        campaign_id, influencer_id, old_status, target, "direct_update",
        url_type=url_type, submitted_url=submitted_url,
    )
    return {"status": target.value, "updatedAt": updated_at, "effects": []}


def _notification_payload(row: dict, item_type: str, due_date: str | None = None, **extra) -> dict:
    payload = {
        "influencer": {
            "id": row.get("id_influencer", ""),
            "name": influencer_name_of(row),
            "email": row.get("contact_email") or row.get("email") or "",
        },
        "campaign_id": row.get("id_campaign", ""),
        "platform_label": platform_label(row.get("platform")),
        "item_type": _ITEM_TYPES.get(item_type, item_type),
    }
    if due_date:
        payload["due_date"] = due_date
    payload.update({k: v for k, v in extra.items() if v})
    return payload


def apply_admin_action(
    campaign_id: str,
    influencer_id: str,
    action: str,
    feedback_message: str | None = None,
) -> dict:
    """Approve or request revision of a plan or draft.

    Unknown actions fail before any read or write. Revise actions with
    feedback append a ``revision_feedback`` message and produce a
    ``revision_request`` webhook effect.

    Returns:
        {"message", "newStatus", "updatedAt", "effects"}
    """
    services = get_services()
    resolve_admin_action(action)  # unknown actions fail before any I/O

    services.store.require_write()
    row = _find_row(campaign_id, influencer_id, force_refresh=True)
    current = status_or_default(row.get("status_dashboard"))
    rule = resolve_admin_action(action, current, strict=services.strict_transitions)
    new_status = rule["to"]

    feedback = (feedback_message or "").strip()
    message = None
    if action.startswith("revise") and feedback:
        message = {"type": "revision_feedback", "content": feedback, "timestamp": now_iso()}

    updated_at = _commit_status_change(
        campaign_id, influencer_id, current, new_status, action, message=message,
    )

    text = ADMIN_ACTION_MESSAGES[action]
    if action.startswith("revise") and feedback:
        text += f" フィードバック: {feedback}"

    effects = []
    if action.startswith("revise"):
        item = "plan" if action.endswith("plan") else "draft"
        effects.append(PostCommitEffect(
            EVENT_REVISION_REQUEST,
            _notification_payload(
                row, item,
                due_date=iso_date_or_none(row.get("date_plan" if item == "plan" else "date_draft")),
                feedback_bullets=feedback,
            ),
        ))

    return {"message": text, "newStatus": new_status.value, "updatedAt": updated_at, "effects": effects}


def submit_content(campaign_id: str, influencer_id: str, submitted_url: str) -> dict:
    """Influencer submits a plan/draft/content URL; status follows the table.

    Raises:
        ValidationError: empty URL, or the current status accepts no submission.
        TransitionError: same as above in strict mode (HTTP 409).
    """
    url = (submitted_url or "").strip()
    if not url:
        raise ValidationError("submittedUrl is required", details={"submittedUrl": "required"})

    services = get_services()
    services.store.require_write()
    row = _find_row(campaign_id, influencer_id, force_refresh=True)
    current = status_or_default(row.get("status_dashboard"))
    rule = resolve_submission(current, strict=services.strict_transitions)
    if rule is None:
        raise ValidationError(
            f"No submission is expected in status '{current.value}'",
            details={"status": current.value},
        )

    updated_at = _commit_status_change(
        campaign_id, influencer_id, current, rule["to"], "submission",
        url_type=rule["url_type"], submitted_url=url,
    )
    return {
        "newStatus": rule["to"].value,
        "statusLabel": status_label(rule["to"]),
        "urlType": rule["url_type"],
        "updatedAt": updated_at,
        "effects": [],
    }


# ═══════════════════════════════════════════════════════════════════════════
# Messages & reminders
# ═══════════════════════════════════════════════════════════════════════════


def append_message(campaign_id: str, influencer_id: str | None, msg_type: str, content: str) -> list:
    """Append one {type, content, timestamp} entry to message_dashboard."""
    entry = {"type": msg_type, "content": content, "timestamp": now_iso()}
    return get_services().store.append_json_log_entry(
        CAMPAIGNS_SHEET, _row_key(campaign_id), "message_dashboard", entry,
        match=_match(influencer_id),
    )


def send_reminder(
    campaign_id: str,
    influencer_id: str,
    content: str,
    item_type: str | None = None,
    due_date: str | None = None,
    due_time: str | None = None,
) -> dict:
    """Record a reminder on the campaign and notify the influencer."""
    store = get_services().store
    store.require_write()
    row = _find_row(campaign_id, influencer_id, force_refresh=True)
    if not item_type:
        step_item = {
            CampaignStatus.PLAN_CREATING: "plan",
            CampaignStatus.PLAN_REVISING: "plan",
            CampaignStatus.DRAFT_CREATING: "draft",
            CampaignStatus.DRAFT_REVISING: "draft",
            CampaignStatus.SCHEDULING: "content",
            CampaignStatus.MEETING_SCHEDULING: "meeting",
        }
        item_type = step_item.get(status_or_default(row.get("status_dashboard")), "plan")
    if not due_date:
        due_date = iso_date_or_none(row.get({"plan": "date_plan", "draft": "date_draft"}.get(item_type, "date_live")))

    messages = append_message(campaign_id, influencer_id, "reminder_sent", content)
    effect = PostCommitEffect(
        EVENT_REMINDER,
        _notification_payload(row, item_type, due_date=due_date, due_time=due_time),
    )
    return {"messages": messages, "effects": [effect]}


# ═══════════════════════════════════════════════════════════════════════════
# Onboarding (contract info survey)
# ═══════════════════════════════════════════════════════════════════════════


def submit_onboarding(data: dict) -> dict:
    """Store the influencer's contract info and notify the contract webhook.

    Required: campaignId, contractName, email, price, uploadDate,
    planSubmissionDate, draftSubmissionDate. ``repurposable`` is "yes"/"no".
    """
    required = ("campaignId", "contractName", "email", "price",
                "uploadDate", "planSubmissionDate", "draftSubmissionDate")
    missing = [k for k in required if not str(data.get(k) or "").strip()]
    if missing:
        raise ValidationError("Missing required fields", details={k: "required" for k in missing})

    try:
        email = validate_email(str(data["email"]).strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": str(exc)})

    dates = {}
    for key in ("uploadDate", "planSubmissionDate", "draftSubmissionDate"):
        iso = iso_date_or_none(data.get(key))
        if iso is None:
            raise ValidationError(f"Invalid date for {key}", details={key: data.get(key)})
        dates[key] = iso

    price_digits = "".join(ch for ch in str(data["price"]) if ch.isdigit())
    repurposable = "TRUE" if str(data.get("repurposable", "")).strip().lower() == "yes" else "FALSE"
    campaign_id = str(data["campaignId"]).strip()
    influencer_id = str(data.get("influencerId") or "").strip() or None
    updated_at = now_iso()

    writes = {
        "spend_jpy": price_digits,
        "date_live": dates["uploadDate"],
        "date_plan": dates["planSubmissionDate"],
        "date_draft": dates["draftSubmissionDate"],
        "repurposable": repurposable,
        "contract_name_dashboard": str(data["contractName"]).strip(),
        "status_dashboard": ONBOARDING_STATUS.value,
        "date_status_updated": updated_at,
    }
    get_services().store.write_cells(CAMPAIGNS_SHEET, _row_key(campaign_id), writes, match=_match(influencer_id))
    logger.info("Onboarding info stored", extra={"campaign_id": campaign_id, "event_type": "onboarding"})

    effect = PostCommitEffect(EVENT_CONTRACT_INFO, {
        "campaignId": campaign_id,
        "contractName": writes["contract_name_dashboard"],
        "email": email,
        "price": price_digits,
        "uploadDate": dates["uploadDate"],
        "planSubmissionDate": dates["planSubmissionDate"],
        "draftSubmissionDate": dates["draftSubmissionDate"],
        "repurposable": repurposable,
        "timestamp": updated_at,
    })
    return {"message": "基本情報が正常に更新されました", "updatedAt": updated_at, "effects": [effect]}


# ═══════════════════════════════════════════════════════════════════════════
# Login touch
# ═══════════════════════════════════════════════════════════════════════════


def touch_on_login(influencer_id: str) -> int:
    """Stamp date_status_updated on the influencer's untouched campaigns.

    Best-effort: failures are logged and never block the login.
    Returns the number of rows updated.
    """
    store = get_services().store
    if not store.can_write:
        return 0
    touched = 0
    try:
        rows = fetch_campaign_rows(influencer_id, force_refresh=True)
        for row in rows:
            cid = (row.get("id_campaign") or "").strip()
            raw = (row.get("status_dashboard") or "").strip()
            if not cid or (raw and coerce_status(raw) != CampaignStatus.NOT_STARTED):
                continue
            store.write_cells(CAMPAIGNS_SHEET, _row_key(cid), {"date_status_updated": now_iso()},
                              match=_match(influencer_id))
            touched += 1
    except Exception:
        logger.exception("Login touch failed", extra={"influencer_id": influencer_id})
    return touched


# ═══════════════════════════════════════════════════════════════════════════
# Updates feed
# ═══════════════════════════════════════════════════════════════════════════

_FEED_TEMPLATES = {
    CampaignStatus.PLAN_SUBMITTED: ("submission", "{name}さんから構成案が提出されました", "url_plan", "approve_plan"),
    CampaignStatus.PLAN_REVISING: ("approval", "{name}さんの構成案を修正中です", None, None),
    CampaignStatus.DRAFT_SUBMITTED: ("submission", "{name}さんから初稿が提出されました", "url_draft", "approve_draft"),
    CampaignStatus.DRAFT_REVISING: ("approval", "{name}さんの初稿を修正中です", None, None),
    CampaignStatus.SCHEDULING: ("status_change", "{name}さんのコンテンツ投稿準備中です", None, None),
    CampaignStatus.SCHEDULED: ("status_change", "{name}さんのコンテンツが投稿されました！", "url_content", None),
    CampaignStatus.PAYMENT_PROCESSING: (
        "status_change", "{name}さんのステータスが「送金手続き中」に更新されました", "url_content", None,
    ),
    CampaignStatus.COMPLETED: ("status_change", "{name}さんのプロモーションが完了しました", None, None),
    CampaignStatus.CANCELLED: ("status_change", "{name}さんのプロモーションがキャンセルされました", None, None),
}


def _naive_utc(stamp: datetime) -> datetime:
    if stamp.tzinfo is None:
        return stamp
    return stamp.astimezone(timezone.utc).replace(tzinfo=None)


def build_updates_feed(influencer_id: str | None = None, limit: int = MAX_FEED_ITEMS) -> list[dict]:
    """Derive recent activity from each row's current status and timestamp.

    Rows missing campaign id, influencer id, status or a parseable
    date_status_updated are skipped. Newest first, at most *limit*.
    """
    items = []
    for row in fetch_campaign_rows(influencer_id):
        cid = (row.get("id_campaign") or "").strip()
        iid = (row.get("id_influencer") or "").strip()
        raw_status = (row.get("status_dashboard") or "").strip()
        raw_date = (row.get("date_status_updated") or "").strip()
        if not (cid and iid and raw_status and raw_date):
            continue
        stamp = parse_datetime(raw_date)
        if stamp is None:
            continue

        name = influencer_name_of(row)
        status = coerce_status(raw_status)
        kind, template, url_col, action_type = _FEED_TEMPLATES.get(
            status,
            ("status_change", "{name}さんのステータスが「{label}」に更新されました", None, None),
        )
        item = {
            "id": f"update_{cid}_{raw_status}_{raw_date}",
            "type": kind,
            "campaignId": cid,
            "influencerId": iid,
            "influencerName": name,
            "status": status.value if status else raw_status,
            "message": template.format(name=name, label=status_label(raw_status)),
            "timestamp": stamp.isoformat(),
            "requiresAdminAction": action_type is not None,
        }
        if url_col and (row.get(url_col) or "").strip():
            item["submissionUrl"] = row[url_col].strip()
        if action_type:
            item["actionType"] = action_type
        items.append((_naive_utc(stamp), item))

    items.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in items[:limit]]


def create_update(data: dict) -> dict:
    """Echo a client-created update. Updates are derived, not stored."""
    required = ("campaignId", "influencerId", "influencerName", "type", "message")
    missing = [k for k in required if not str(data.get(k) or "").strip()]
    if missing:
        raise ValidationError("Missing required fields", details={k: "required" for k in missing})
    ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return {
        "id": f"update_{data['campaignId']}_{ms}",
        "type": data["type"],
        "campaignId": data["campaignId"],
        "influencerId": data["influencerId"],
        "influencerName": data["influencerName"],
        "message": data["message"],
        "timestamp": now_iso(),
        "submissionUrl": data.get("submissionUrl"),
        "requiresAdminAction": bool(data.get("requiresAdminAction")),
    }


# ═══════════════════════════════════════════════════════════════════════════
# Chat history
# ═══════════════════════════════════════════════════════════════════════════


def get_chat_history(campaign_id: str) -> list:
    """Messages stored in the campaign's chat_history column ([] when corrupt)."""
    row = _find_row(campaign_id)
    return parse_json_array(row.get("chat_history"))
