"""
Template Service — rule-based outreach email templates.

A template rule matches when ALL of its conditions hold against the
influencer being contacted:

    field       platform | outreachType | previousContact ("true"/"false")
    operator    "=" | "!=" | "contains"   (anything else never matches)

Rules are evaluated in order and the first match wins. Subject and body
may use the placeholders {influencerName}, {teamMemberName}, {greeting}
and {platform}.

Rules persist in the ``templates`` sheet (id, name, conditions_json,
subject, body). When that sheet is empty, unreadable or unconfigured the
built-in DEFAULT_TEMPLATES are served.
"""

import copy
import json
import logging
from dataclasses import asdict, dataclass, field

from app.core.exceptions import RowStoreError, SheetsNotConfiguredError, ValidationError
from app.services.registry import get_services
from app.services.row_store import parse_json_array
from app.services.sheet_schema import TEMPLATES_SHEET

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = ("platform", "outreachType", "previousContact")
OPERATORS = ("=", "!=", "contains")

GREETING_RETURNING = "お世話になっております"
GREETING_FIRST = "初めまして"
DEFAULT_OUTREACH_TYPE = "リーチアウト"


@dataclass
class TemplateRule:
    id: int
    name: str
    conditions: list = field(default_factory=list)
    subject: str = ""
    body: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TemplateRule":
        if not isinstance(data, dict):
            raise ValidationError("Template must be an object")
        conditions = []
        for cond in data.get("conditions") or []:
            if not isinstance(cond, dict):
                continue
            conditions.append({
                "field": str(cond.get("field", "")),
                "operator": str(cond.get("operator", "")),
                "value": str(cond.get("value", "")),
            })
        try:
            rule_id = int(data.get("id") or 0)
        except (TypeError, ValueError):
            raise ValidationError("Template id must be a number", details={"id": data.get("id")}) from None
        return cls(
            id=rule_id,
            name=str(data.get("name") or ""),
            conditions=conditions,
            subject=str(data.get("subject") or ""),
            body=str(data.get("body") or ""),
        )

    def matches(self, platform: str, outreach_type: str, previous_contact: bool) -> bool:
        values = {
            "platform": platform,
            "outreachType": outreach_type,
            "previousContact": "true" if previous_contact else "false",
        }
        for cond in self.conditions:
            actual = values.get(cond.get("field"), "")
            expected = cond.get("value", "")
            op = cond.get("operator")
            if op == "=":
                ok = actual == expected
            elif op == "!=":
                ok = actual != expected
            elif op == "contains":
                ok = expected in actual
            else:
                ok = False
            if not ok:
                return False
        return True


# ── Built-in defaults ────────────────────────────────────────────────────

_SIGNATURE = "\n\nSpeakeasy Labs, Inc.\n{teamMemberName}"

_YOUTUBE_BODY = (
    "{influencerName}様\n"
    "{greeting}。Speakeasy Labs, Inc. マーケティングチームです。\n"
    "{influencerName}様のチャンネルにて公開されている動画を拝見し、ぜひ弊社の英会話アプリ"
    "「スピーク」のPRをご依頼させていただきたくご連絡いたしました。\n\n"
    "【スピークとは】\n"
    "米国シリコンバレー発、AIによる\"スピーキング特化型\"の英会話アプリです。\n"
    "✅ OpenAI（ChatGPTの開発元）より資金調達に成功\n"
    "✅ 2023年日本上陸。App Store/Google Play 教育カテゴリにて1位を複数回獲得\n"
    "✅ 高畑充希さんを起用したテレビCMを全国放映\n\n"
    "【ご依頼内容】\n"
    "・形式：YouTube 横動画でのPR（動画内でのご紹介を想定）\n"
    "・報酬：ご希望の金額（税込）を伺ったうえで、相談させていただけますと幸いです\n\n"
    "※ご依頼前に、スピークのプレミアムプランを無償提供いたします。\n"
    "実際にお試しいただき、サービスにご納得いただけた場合に正式にPRをご依頼いたします。\n"
    "過去のコラボ実績などのPR詳細はこちらをご覧ください→ "
    "https://usespeak.notion.site/5d43676ad8da4a418c722a7b47229f3d?pvs=4\n\n"
    "ご興味をお持ちいただけましたら、ご希望の報酬金額（税込）をご返信いただけますと幸いです。\n\n"
    "{influencerName}様の返信を心よりお待ちしております。"
) + _SIGNATURE

DEFAULT_TEMPLATES: list[dict] = [
    {
        "id": 1,
        "name": "Twitter初回アウトリーチ",
        "conditions": [
            {"field": "platform", "operator": "=", "value": "tw"},
            {"field": "outreachType", "operator": "=", "value": "1st time outreach"},
        ],
        "subject": "【英会話アプリのPR依頼】",
        "body": (
            "【英会話アプリのPR依頼】\n"
            "{greeting}、AI英会話アプリ「スピーク」の{teamMemberName}と申します。"
            "キャンペーン期間中にてPR投稿にご協力いただける形を募集しております。\n\n"
            "その一環としてぜひ、{influencerName}様にご協力いただきたいと考えております。\n\n"
            "・投稿内容：今までに高いインプレッションを獲得した投稿フォーマットにて"
            "スピークを自然に入れ込む形でPR。リプ欄にリンクとPR内容を挿入。\n\n"
            "資料をご覧の上ご興味がございましたらご希望の報酬をお聞かせいただけますでしょうか？\n"
            "・https://usespeak.notion.site/YouTube-1f3792ec2f108090b3fbe9b4051a4a4c?pvs=4\n\n"
            "ご返信をお待ちしております。\n"
            "※返信はCCも含め全員にお願いいたします。"
        ),
    },
    {
        "id": 2,
        "name": "ショート動画初回アウトリーチ",
        "conditions": [
            {"field": "platform", "operator": "=", "value": "sv"},
            {"field": "outreachType", "operator": "=", "value": "1st time outreach"},
        ],
        "subject": "スピークのPR依頼｜{influencerName}様",
        "body": (
            "{influencerName}様\n\n"
            "{greeting}。Speakeasy Labs, Inc.のマーケティングチームです。\n"
            "{influencerName}様のコンテンツを拝見し、ぜひ弊社が開発するAI英会話アプリ「スピーク」の"
            "PRを縦動画（YouTubeショート、Reels、TikTok等）にて依頼させていただきたいと思い"
            "ご連絡差し上げました。\n\n"
            "【PRについて】\n"
            "フォーマット：縦動画フル動画\n"
            "契約内容：広告としての二次利用込み\n"
            "報酬：ご希望の金額を伺ったうえで相談させていただければと思います\n\n"
            "ご興味をいただけましたら、ご希望の報酬額を税込でお聞かせいただけますでしょうか？\n"
            "・インフルエンサー向け資料：https://usespeak.notion.site/5d43676ad8da4a418c722a7b47229f3d?pvs=4\n\n"
            "{influencerName}様のご返信をお待ちしております。\n"
            "※返信はCCも含め全員にお願いいたします。"
        ) + _SIGNATURE,
    },
    {
        "id": 3,
        "name": "ポッドキャスト初回アウトリーチ",
        "conditions": [
            {"field": "platform", "operator": "=", "value": "pc"},
            {"field": "outreachType", "operator": "=", "value": "1st time outreach"},
        ],
        "subject": "スピークのPR依頼｜{influencerName}様",
        "body": (
            "{influencerName}様\n"
            "{greeting}。\n"
            "AI英会話アプリ「スピーク」を運営するSpeakeasy Labs, Inc.のマーケティングチームです。\n"
            "{influencerName}様のPodcastを拝聴し、ぜひスピークのPRについてご相談させていただきたく"
            "ご連絡いたしました。\n\n"
            "【Podcast PRのご相談】\n"
            "・フォーマット：Podcast内でのご紹介（ホストリード/ご相談の上決定）\n"
            "・配信希望時期：ご都合に合わせ調整可能\n"
            "・報酬：ご希望の金額をお聞きした上でご相談させていただけますと幸いです\n\n"
            "ご興味をお持ちいただけましたら、ぜひご希望の報酬額（税込）をお聞かせください。\n\n"
            "{influencerName}様のご返信を心よりお待ちしております。\n"
            "※ご返信はCCも含め全員にお願いいたします。"
        ) + _SIGNATURE,
    },
    {
        "id": 4,
        "name": "YouTube初回リーチ",
        "conditions": [
            {"field": "platform", "operator": "=", "value": "yt"},
            {"field": "outreachType", "operator": "=", "value": "1st time outreach"},
        ],
        "subject": "スピークのPR依頼｜{influencerName}様",
        "body": _YOUTUBE_BODY,
    },
    {
        "id": 5,
        "name": "YouTubeリーチアウト",
        "conditions": [
            {"field": "platform", "operator": "=", "value": "yt"},
            {"field": "outreachType", "operator": "=", "value": "リーチアウト"},
        ],
        "subject": "スピークのPR依頼｜{influencerName}様",
        "body": _YOUTUBE_BODY,
    },
]

# Rules most recently loaded or saved in this process
_current_rules: list[dict] = copy.deepcopy(DEFAULT_TEMPLATES)


# ── Candidate expansion ──────────────────────────────────────────────────

_OUTREACH_VARIANTS = {
    "リーチアウト": ["リーチアウト", "初回アウトリーチ", "1st time outreach"],
    "初回アウトリーチ": ["リーチアウト", "初回アウトリーチ", "1st time outreach"],
    "PR準備": ["PR準備", "PR prep"],
    "2回目アウトリーチ": ["2回目アウトリーチ", "2nd Outreach"],
}

_PLATFORM_VARIANTS = {
    "yts": ["yts", "sv"],
    "sv": ["sv", "yts"],
    "youtube": ["yt"],
    "youtube_long": ["yt"],
    "youtube_short": ["yts", "sv"],
    "youtube_shorts": ["yts", "sv"],
}


def expand_outreach_type(outreach_type: str) -> list[str]:
    value = (outreach_type or "").strip()
    return list(_OUTREACH_VARIANTS.get(value, [value]))


def expand_platform(platform: str) -> list[str]:
    value = (platform or "").strip().lower()
    return list(_PLATFORM_VARIANTS.get(value, [value or "yt"]))


# ── Persistence ──────────────────────────────────────────────────────────


def _rule_from_row(row: dict) -> dict | None:
    try:
        rule_id = int(str(row.get("id") or "").strip())
    except ValueError:
        return None
    return {
        "id": rule_id,
        "name": row.get("name", ""),
        "conditions": [c for c in parse_json_array(row.get("conditions_json")) if isinstance(c, dict)],
        "subject": row.get("subject", ""),
        "body": row.get("body", ""),
    }


def load_templates() -> list[dict]:
    """Rules from the templates sheet, or the in-process copy when unavailable."""
    global _current_rules
    try:
        rows = get_services().store.fetch_columns(None, sheet=TEMPLATES_SHEET)
    except SheetsNotConfiguredError:
        return copy.deepcopy(_current_rules)
    except RowStoreError as exc:
        logger.warning("Falling back to in-memory templates: %s", exc)
        return copy.deepcopy(_current_rules)

    rules = [r for r in (_rule_from_row(row) for row in rows) if r is not None]
    if not rules:
        return copy.deepcopy(_current_rules)
    _current_rules = copy.deepcopy(rules)
    return rules


def save_templates(templates: list) -> dict:
    """Replace the rule set. The in-process copy is always updated.

    Returns:
        {"persisted": bool, "count": int}
    """
    global _current_rules
    if not isinstance(templates, list):
        raise ValidationError("templates must be a list")
    rules = [TemplateRule.from_dict(t).to_dict() for t in templates]
    _current_rules = copy.deepcopy(rules)

    rows = [
        {
            "id": r["id"],
            "name": r["name"],
            "conditions_json": json.dumps(r["conditions"], ensure_ascii=False),
            "subject": r["subject"],
            "body": r["body"],
        }
        for r in rules
    ]
    store = get_services().store
    if not store.can_write:
        logger.info("Templates saved in memory only (sheet is read-only)")
        return {"persisted": False, "count": len(rules)}
    try:
        store.replace_rows(TEMPLATES_SHEET, rows)
    except RowStoreError as exc:
        logger.warning("Failed to persist templates: %s", exc)
        return {"persisted": False, "count": len(rules)}
    return {"persisted": True, "count": len(rules)}


def reset_templates() -> None:
    global _current_rules
    _current_rules = copy.deepcopy(DEFAULT_TEMPLATES)


# ── Rendering ────────────────────────────────────────────────────────────


def find_matching_template(
    templates: list[dict], platform: str, outreach_type: str, previous_contact: bool
) -> dict | None:
    for data in templates:
        rule = TemplateRule.from_dict(data)
        if rule.matches(platform, outreach_type, previous_contact):
            return data
    return None


def _fill(text: str, values: dict) -> str:
    for key, value in values.items():
        text = text.replace("{" + key + "}", value)
    return text


def render_message(
    influencer_name: str,
    platform: str,
    outreach_type: str,
    previous_contact: bool,
    team_member_name: str,
    templates: list[dict] | None = None,
) -> dict:
    """Render {subject, body} for one influencer.

    Every platform/outreach-type candidate pair is tried in order. With no
    matching rule a diagnostic "Template Error" message is returned.
    """
    templates = load_templates() if templates is None else templates
    outreach_type = outreach_type or DEFAULT_OUTREACH_TYPE
    greeting = GREETING_RETURNING if previous_contact else GREETING_FIRST

    for p in expand_platform(platform):
        for o in expand_outreach_type(outreach_type):
            rule = find_matching_template(templates, p, o, previous_contact)
            if rule is None:
                continue
            values = {
                "influencerName": influencer_name,
                "teamMemberName": team_member_name or "",
                "greeting": greeting,
                "platform": p,
            }
            return {
                "subject": _fill(rule.get("subject", ""), values),
                "body": _fill(rule.get("body", ""), values),
                "templateId": rule.get("id"),
            }

    logger.warning("No template for platform=%s outreachType=%s previousContact=%s",
                   platform, outreach_type, previous_contact)
    return {
        "subject": f"Template Error - {influencer_name}様",
        "body": (
            "Template matching error for:\n"
            f"- Platform: {platform}\n"
            f"- Outreach Type: {outreach_type}\n"
            f"- Previous Contact: {str(previous_contact).lower()}\n\n"
            "Please check Settings/Templates to ensure a matching template exists.\n\n"
            "Debug info:\n"
            f"- Influencer: {influencer_name}\n"
            f"- Team Member: {team_member_name or ''}"
        ),
        "templateId": None,
    }
