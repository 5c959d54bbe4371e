"""
Campaign Record Assembler

Turns one raw spreadsheet row (column name → cell string) into a typed
Campaign. Cells are edited by hand, so every parser here is total:
malformed input maps to a default and never raises.

    price    "¥50,000" → 50000, garbage → 0
    date     "2024-03-05" → date(2024, 3, 5), other formats best-effort, else None
    status   empty / unknown → not_started (legacy aliases accepted)
    platform unknown → yt
    JSON     unparseable message log → []

Usage:
    from app.services.campaign_assembler import assemble_campaign
    campaign = assemble_campaign(row)
    campaign.to_dict()
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime

from app.services.platform import normalize_platform, platform_label
from app.services.row_store import parse_json_array
from app.services.sheet_schema import CAMPAIGN_PASSTHROUGH_COLUMNS
from app.services.status_machine import CampaignStatus, status_or_default, step_of, status_label

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_PRICE_STRIP = re.compile(r"[¥$€£,\s]")
_LEADING_INT = re.compile(r"^-?\d+")

# Tried in order after the strict yyyy-mm-dd form
_DATE_FORMATS = (
    # strptime accepts unpadded fields, e.g. 2024-3-5
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y年%m月%d日",
    "%m/%d/%Y",
    "%d %b %Y",
    "%b %d, %Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
)

_TRUTHY = frozenset({"true", "1", "yes", "y", "済", "submitted"})


# ── Cell parsers ─────────────────────────────────────────────────────────


def parse_price(raw) -> int:
    """Currency-formatted string → integer yen. 0 on failure."""
    if raw is None:
        return 0
    if isinstance(raw, (int, float)):
        return int(raw) if math.isfinite(raw) else 0
    cleaned = _PRICE_STRIP.sub("", str(raw))
    match = _LEADING_INT.match(cleaned)
    return int(match.group(0)) if match else 0


def parse_date(raw) -> date | None:
    """Cell → calendar date, or None. Never raises.

    yyyy-mm-dd is read as a plain calendar date (no timezone shift).
    ISO timestamps keep their own date component.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    value = str(raw).strip()
    if not value:
        return None
    if _ISO_DATE.match(value):
        try:
            return date.fromisoformat(value)
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_datetime(raw) -> datetime | None:
    """Cell → datetime for ordering (timestamps keep their time of day)."""
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    parsed = parse_date(value)
    return datetime(parsed.year, parsed.month, parsed.day) if parsed else None


def format_date(value) -> str | None:
    """date → 'yyyy-mm-dd'. Round-trips with parse_date."""
    if value is None:
        return None
    return value.isoformat()[:10]


def iso_date_or_none(raw) -> str | None:
    return format_date(parse_date(raw))


def parse_lines(raw) -> list[str]:
    """Split a multi-line cell, dropping blank lines."""
    if not raw:
        return []
    return [line.strip() for line in str(raw).splitlines() if line.strip()]


def to_bool(raw) -> bool:
    return str(raw or "").strip().lower() in _TRUTHY


def submission_count(log_status, target_status: str | None = None) -> int:
    """How many status-log entries moved the campaign into *target_status*."""
    entries = parse_json_array(log_status)
    if target_status is None:
        return len(entries)
    return sum(1 for e in entries if isinstance(e, dict) and e.get("new_status") == target_status)


def submission_count_text(log_status, target_status: str) -> str:
    count = submission_count(log_status, target_status)
    if count == 0:
        return ""
    if count == 1:
        return "初回の提出"
    return f"{count}回目の提出"


def latest_feedback(messages: list) -> dict | None:
    """Most recent revision_feedback message, by timestamp."""
    feedback = [m for m in messages if isinstance(m, dict) and m.get("type") == "revision_feedback"]
    if not feedback:
        return None
    return max(feedback, key=lambda m: str(m.get("timestamp") or ""))


# ── Campaign ─────────────────────────────────────────────────────────────


@dataclass
class Campaign:
    id: str
    influencer_id: str
    influencer_name: str
    status: CampaignStatus
    platform: str
    contracted_price: int
    created_at: str | None = None
    updated_at: str | None = None
    meeting_date: str | None = None
    plan_submission_date: str | None = None
    draft_submission_date: str | None = None
    live_date: str | None = None
    plan_url: str = ""
    draft_url: str = ""
    content_url: str = ""
    requirements: list = field(default_factory=list)
    reference_links: list = field(default_factory=list)
    notes: str = ""
    messages: list = field(default_factory=list)
    status_log: list = field(default_factory=list)
    campaign_data: dict = field(default_factory=dict)

    @property
    def step(self):
        return step_of(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.id,
            "influencerId": self.influencer_id,
            "influencerName": self.influencer_name,
            "status": self.status.value,
            "statusLabel": status_label(self.status),
            "step": self.step.value,
            "platform": self.platform,
            "platformLabel": platform_label(self.platform),
            "contractedPrice": self.contracted_price,
            "currency": "JPY",
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "schedules": {
                "meetingDate": self.meeting_date,
                "planSubmissionDate": self.plan_submission_date,
                "draftSubmissionDate": self.draft_submission_date,
                "liveDate": self.live_date,
            },
            "urls": {
                "plan": self.plan_url or None,
                "draft": self.draft_url or None,
                "content": self.content_url or None,
            },
            "requirements": self.requirements,
            "referenceLinks": self.reference_links,
            "notes": self.notes,
            "messages": self.messages,
            "submissionCounts": {
                "plan": sum(1 for e in self.status_log
                            if isinstance(e, dict) and e.get("new_status") == "plan_submitted"),
                "draft": sum(1 for e in self.status_log
                             if isinstance(e, dict) and e.get("new_status") == "draft_submitted"),
            },
            "campaignData": self.campaign_data,
        }


def influencer_name_of(row: dict) -> str:
    for key in ("name", "インフルエンサー名", "influencer_name"):
        value = (row.get(key) or "").strip()
        if value:
            return value
    return "Unknown Influencer"


def assemble_campaign(row: dict) -> Campaign | None:
    """Build a Campaign from a raw row. Returns None when id_campaign is empty."""
    campaign_id = (row.get("id_campaign") or "").strip()
    if not campaign_id:
        return None

    return Campaign(
        id=campaign_id,
        influencer_id=(row.get("id_influencer") or "").strip(),
        influencer_name=influencer_name_of(row),
        status=status_or_default(row.get("status_dashboard")),
        platform=normalize_platform(row.get("platform")),
        contracted_price=parse_price(row.get("spend_jpy")),
        created_at=(row.get("date_deal_closed") or "").strip() or None,
        updated_at=(row.get("date_status_updated") or "").strip() or None,
        meeting_date=None,
        plan_submission_date=iso_date_or_none(row.get("date_plan")),
        draft_submission_date=iso_date_or_none(row.get("date_draft")),
        live_date=iso_date_or_none(row.get("date_live")),
        plan_url=(row.get("url_plan") or "").strip(),
        draft_url=(row.get("url_draft") or "").strip(),
        content_url=(row.get("url_content") or "").strip(),
        requirements=parse_lines(row.get("template")),
        reference_links=[{"title": "Reference", "url": url} for url in parse_lines(row.get("url_plan"))],
        notes=row.get("notes") or row.get("status_notes") or "",
        messages=parse_json_array(row.get("message_dashboard")),
        status_log=parse_json_array(row.get("log_status")),
        campaign_data={col: row.get(col, "") for col in CAMPAIGN_PASSTHROUGH_COLUMNS if col in row},
    )


def assemble_campaigns(rows: list[dict]) -> list[Campaign]:
    campaigns = []
    skipped = 0
    for row in rows:
        campaign = assemble_campaign(row)
        if campaign is None:
            skipped += 1
            continue
        campaigns.append(campaign)
    if skipped:
        logger.debug("Skipped %d row(s) without id_campaign", skipped)
    return campaigns
