"""
Comms Service — outreach to shortlisted influencers.

Reads the ``selected`` sheet (one row per outreach attempt; the same
influencer may appear several times, the lowest row is the latest),
renders template emails, sends them and marks the influencer as
"Reached out".

Usage:
    influencers = comms_service.selected_influencers()
    messages = comms_service.generate_messages(["inf-1"], "Taro", "リーチアウト")
    comms_service.send_emails(messages)
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, RowStoreError, ValidationError, WritePermissionError
from app.services import template_service
from app.services.email_service import DEFAULT_SENDER, EmailMessage, EmailService
from app.services.registry import get_services
from app.services.sheet_schema import SELECTED_SHEET

logger = logging.getLogger(__name__)

NAME_PLACEHOLDER = "【名前未入力】"
STATUS_REACHED_OUT = "Reached out"

_COLUMNS = [
    "id_influencer",
    "name",
    "インフルエンサー名",
    "influencer_name",
    "contact_email",
    "platform",
    "sender",
    "had_response",
    "status",
    "date_outreach",
]
_NAME_KEYS = ("インフルエンサー名", "name", "Name", "influencer_name", "influencer name", "Influencer Name")


def _latest_by_id(rows: list[dict]) -> dict[str, dict]:
    latest: dict[str, dict] = {}
    for row in rows:
        iid = (row.get("id_influencer") or "").strip()
        if iid:
            latest[iid] = row
    return latest


def _display_name(row: dict) -> str:
    for key in _NAME_KEYS:
        value = (row.get(key) or "").strip()
        if value:
            return value
    return NAME_PLACEHOLDER


def _had_response(row: dict) -> bool:
    return (row.get("had_response") or "").strip() in ("TRUE", "1")


def _read_selected() -> dict[str, dict]:
    rows = get_services().store.fetch_columns(_COLUMNS, sheet=SELECTED_SHEET)
    return _latest_by_id(rows)


def selected_influencers() -> list[dict]:
    """Influencers whose latest row is "selected" (any case) or blank."""
    result = []
    for iid, row in _read_selected().items():
        status = (row.get("status") or "").strip()
        if status and status.lower() != "selected":
            continue
        result.append({
            "id": iid,
            "name": _display_name(row),
            "email": row.get("contact_email") or "",
            "platform": row.get("platform") or "yt",
            "outreachType": "",
            "previousContact": _had_response(row),
            "teamMemberName": row.get("sender") or "",
            "status": status,
            "dateOutreach": row.get("date_outreach") or "",
        })
    logger.info("Selected influencers: %d", len(result))
    return result


def generate_messages(
    influencer_ids: list,
    team_member_name: str,
    template_type: str | None = None,
    custom_message: str | None = None,
) -> list[dict]:
    """Render one message per requested influencer id (unknown ids are skipped)."""
    if not isinstance(influencer_ids, list):
        raise ValidationError("influencerIds must be a list")
    latest = _read_selected()
    templates = template_service.load_templates()
    outreach_type = template_type or template_service.DEFAULT_OUTREACH_TYPE

    messages = []
    for raw_id in influencer_ids:
        iid = str(raw_id or "").strip()
        row = latest.get(iid)
        if row is None:
            continue
        name = _display_name(row)
        rendered = template_service.render_message(
            name,
            row.get("platform") or "yt",
            outreach_type,
            _had_response(row),
            team_member_name or "",
            templates=templates,
        )
        messages.append({
            "influencerId": iid,
            "influencerName": name,
            "email": row.get("contact_email") or "",
            "subject": rendered["subject"],
            "body": custom_message or rendered["body"],
        })
    return messages


def mark_as_sent(influencer_id: str) -> dict:
    """Set date_outreach (today, yyyy-mm-dd) and status on the latest selected row."""
    if not influencer_id:
        raise ValidationError("Influencer ID is required")
    today = datetime.now(timezone.utc).date().isoformat()
    # The lowest row for an influencer is the current outreach attempt
    result = get_services().store.write_cells(
        SELECTED_SHEET,
        ("id_influencer", influencer_id),
        {"date_outreach": today, "status": STATUS_REACHED_OUT},
        last=True,
    )
    logger.info("Marked as reached out", extra={"influencer_id": influencer_id, "sheet": SELECTED_SHEET})
    return {"influencerId": influencer_id, "dateOutreach": today, "status": STATUS_REACHED_OUT, **result}


def send_emails(messages: list) -> dict:
    """Send each message, then mark every delivered recipient as sent.

    A failed mark is logged and does not fail the batch.
    """
    if not isinstance(messages, list) or not messages:
        raise ValidationError("No messages provided")
    items = [m for m in messages if isinstance(m, dict)]

    emails = [
        EmailMessage(
            to=str(m.get("email") or ""),
            subject=str(m.get("subject") or ""),
            body=str(m.get("body") or ""),
            sender=DEFAULT_SENDER,
        )
        for m in items
    ]
    outcome = EmailService.send_bulk(emails)

    marked = 0
    for msg, result in zip(items, outcome["results"]):
        if not result["success"] or not msg.get("influencerId"):
            continue
        try:
            mark_as_sent(str(msg["influencerId"]))
            marked += 1
        except (NotFoundError, RowStoreError, WritePermissionError) as exc:
            logger.warning("Could not mark %s as sent: %s", msg.get("influencerId"), exc)
    outcome["markedCount"] = marked
    return outcome
