"""
Campaign Status Machine

Single source of truth for the campaign workflow:
  - 14 statuses (CampaignStatus) and 7 UI steps (Step)
  - Total status → step mapping
  - Admin review actions (approve/revise plan and draft)
  - Influencer submissions keyed by the current status
  - Legacy status aliases still present in older sheet rows
  - Japanese display labels

Transitions are permissive by default: an admin action sets its target
status whatever the current status is, because admins use the
dashboard to repair rows edited by hand. With STRICT_TRANSITIONS on,
the "from" lists below are enforced and violations raise
TransitionError (HTTP 409). The direct status update never checks.

Usage:
    from app.services.status_machine import resolve_admin_action, step_of

    rule = resolve_admin_action("approve_plan", current="plan_submitted", strict=False)
    rule["to"]            # "draft_creating"
    step_of("scheduling")  # Step.SCHEDULING
"""

from enum import Enum

from app.core.exceptions import TransitionError, ValidationError


class CampaignStatus(str, Enum):
    NOT_STARTED = "not_started"
    MEETING_SCHEDULING = "meeting_scheduling"
    MEETING_SCHEDULED = "meeting_scheduled"
    PLAN_CREATING = "plan_creating"
    PLAN_SUBMITTED = "plan_submitted"
    PLAN_REVISING = "plan_revising"
    DRAFT_CREATING = "draft_creating"
    DRAFT_SUBMITTED = "draft_submitted"
    DRAFT_REVISING = "draft_revising"
    SCHEDULING = "scheduling"
    SCHEDULED = "scheduled"
    PAYMENT_PROCESSING = "payment_processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Step(str, Enum):
    NOT_STARTED = "not_started"
    MEETING = "meeting"
    PLAN_CREATION = "plan_creation"
    DRAFT_CREATION = "draft_creation"
    SCHEDULING = "scheduling"
    PAYMENT = "payment"
    CANCELLED = "cancelled"


S = CampaignStatus

STATUS_VALUES = frozenset(s.value for s in CampaignStatus)

STATUS_STEP: dict[CampaignStatus, Step] = {
    S.NOT_STARTED: Step.NOT_STARTED,
    S.MEETING_SCHEDULING: Step.MEETING,
    S.MEETING_SCHEDULED: Step.MEETING,
    S.PLAN_CREATING: Step.PLAN_CREATION,
    S.PLAN_SUBMITTED: Step.PLAN_CREATION,
    S.PLAN_REVISING: Step.PLAN_CREATION,
    S.DRAFT_CREATING: Step.DRAFT_CREATION,
    S.DRAFT_SUBMITTED: Step.DRAFT_CREATION,
    S.DRAFT_REVISING: Step.DRAFT_CREATION,
    S.SCHEDULING: Step.SCHEDULING,
    S.SCHEDULED: Step.SCHEDULING,
    S.PAYMENT_PROCESSING: Step.PAYMENT,
    S.COMPLETED: Step.PAYMENT,
    S.CANCELLED: Step.CANCELLED,
}

# Older rows and integrations still write these values
LEGACY_ALIASES: dict[str, CampaignStatus] = {
    "plan_submission": S.PLAN_CREATING,
    "plan_review": S.PLAN_SUBMITTED,
    "plan_reviewing": S.PLAN_SUBMITTED,
    "content_creation": S.DRAFT_CREATING,
    "draft_review": S.DRAFT_SUBMITTED,
    "draft_reviewing": S.DRAFT_SUBMITTED,
    "ready_to_publish": S.SCHEDULING,
    "live": S.SCHEDULED,
    "payout_done": S.COMPLETED,
}

# Admin review actions
ADMIN_ACTIONS: dict[str, dict] = {
    "approve_plan": {"from": [S.PLAN_SUBMITTED], "to": S.DRAFT_CREATING},
    "revise_plan": {"from": [S.PLAN_SUBMITTED], "to": S.PLAN_REVISING},
    "approve_draft": {"from": [S.DRAFT_SUBMITTED], "to": S.SCHEDULING},
    "revise_draft": {"from": [S.DRAFT_SUBMITTED], "to": S.DRAFT_REVISING},
}

ADMIN_ACTION_MESSAGES: dict[str, str] = {
    "approve_plan": "構成案が承認されました。初稿作成に進みます。",
    "revise_plan": "構成案の修正を依頼しました。",
    "approve_draft": "初稿が承認されました。投稿準備に進みます。",
    "revise_draft": "初稿の修正を依頼しました。",
}

# Influencer submissions, keyed by the status the campaign is in.
# Resubmissions after a revision land on the legacy "*_reviewing" names,
# which coerce to the submitted status before being stored.
SUBMISSION_TRANSITIONS: dict[CampaignStatus, dict] = {
    S.PLAN_CREATING: {"to": "plan_submitted", "url_type": "plan"},
    S.PLAN_REVISING: {"to": "plan_reviewing", "url_type": "plan"},
    S.DRAFT_CREATING: {"to": "draft_submitted", "url_type": "draft"},
    S.DRAFT_REVISING: {"to": "draft_reviewing", "url_type": "draft"},
    S.SCHEDULING: {"to": "scheduled", "url_type": "content"},
}

URL_COLUMNS: dict[str, str] = {
    "plan": "url_plan",
    "draft": "url_draft",
    "content": "url_content",
}

STATUS_LABELS: dict[CampaignStatus, str] = {
    S.NOT_STARTED: "未開始",
    S.MEETING_SCHEDULING: "打ち合わせ予約中",
    S.MEETING_SCHEDULED: "打ち合わせ予定",
    S.PLAN_CREATING: "構成案作成中",
    S.PLAN_SUBMITTED: "構成案確認中",
    S.PLAN_REVISING: "構成案修正中",
    S.DRAFT_CREATING: "初稿作成中",
    S.DRAFT_SUBMITTED: "初稿提出済み",
    S.DRAFT_REVISING: "初稿修正中",
    S.SCHEDULING: "投稿準備中",
    S.SCHEDULED: "投稿済み",
    S.PAYMENT_PROCESSING: "送金手続き中",
    S.COMPLETED: "完了",
    S.CANCELLED: "キャンセル",
}

STEP_LABELS: dict[Step, str] = {
    Step.NOT_STARTED: "未開始",
    Step.MEETING: "打ち合わせ",
    Step.PLAN_CREATION: "構成案作成",
    Step.DRAFT_CREATION: "初稿作成",
    Step.SCHEDULING: "PR投稿",
    Step.PAYMENT: "お支払い",
    Step.CANCELLED: "キャンセル",
}

INACTIVE_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})


def coerce_status(raw) -> CampaignStatus | None:
    """Map a cell value to a status. Case-insensitive, accepts legacy aliases.

    Returns None for empty or unknown values; callers pick the default.
    """
    if raw is None:
        return None
    if isinstance(raw, CampaignStatus):
        return raw
    value = str(raw).strip().lower()
    if not value:
        return None
    if value in STATUS_VALUES:
        return CampaignStatus(value)
    return LEGACY_ALIASES.get(value)


def status_or_default(raw) -> CampaignStatus:
    """Lossy read: empty or unparseable cells are not_started."""
    return coerce_status(raw) or S.NOT_STARTED


def step_of(status) -> Step:
    """Status → step. Total over every enumerated status."""
    return STATUS_STEP[status_or_default(status)]


def status_label(status) -> str:
    coerced = coerce_status(status)
    if coerced is None:
        return str(status or "")
    return STATUS_LABELS[coerced]


def step_label(step) -> str:
    try:
        return STEP_LABELS[Step(step)]
    except ValueError:
        return str(step)


def is_active(status) -> bool:
    return status_or_default(status) not in INACTIVE_STATUSES


def resolve_admin_action(action: str, current=None, strict: bool = False) -> dict:
    """Return {"action", "from", "to"} for an admin action.

    Raises:
        ValidationError: Unknown action (HTTP 400, nothing is written).
        TransitionError: strict mode and *current* is not an allowed source.
    """
    rule = ADMIN_ACTIONS.get(action)
    if rule is None:
        raise ValidationError("Invalid action type", details={"action": action})
    current_status = status_or_default(current)
    if strict and current_status not in rule["from"]:
        raise TransitionError(action, current_status.value, [s.value for s in rule["from"]])
    return {"action": action, "from": current_status, "to": rule["to"]}


def resolve_submission(current, strict: bool = False) -> dict | None:
    """Return {"from", "to", "url_type"} for an influencer submission.

    ``to`` is always canonical. Returns None when the current status has
    no submission (terminal for this action). In strict mode that case
    raises TransitionError instead.
    """
    current_status = status_or_default(current)
    rule = SUBMISSION_TRANSITIONS.get(current_status)
    if rule is None:
        if strict:
            raise TransitionError("submit", current_status.value,
                                  [s.value for s in SUBMISSION_TRANSITIONS])
        return None
    return {
        "from": current_status,
        "to": coerce_status(rule["to"]),
        "url_type": rule["url_type"],
    }


def available_actions(status) -> list[str]:
    """Admin actions whose source list contains *status* (for UI hints)."""
    current = status_or_default(status)
    return [name for name, rule in ADMIN_ACTIONS.items() if current in rule["from"]]
