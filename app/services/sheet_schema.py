"""
Declared layout of every worksheet the app reads or writes.

The spreadsheet is edited by humans, so nothing here is enforced on
read: unknown columns are ignored and missing ones read as "". The
lists are used to validate the live header row at startup and to tell
operators which columns the workflow depends on.

Keep column order stable; it documents the expected sheet order.
"""

from dataclasses import dataclass, field

CAMPAIGNS_SHEET = "campaigns"
SELECTED_SHEET = "selected"
TEMPLATES_SHEET = "templates"


@dataclass(frozen=True)
class SheetSpec:
    """One worksheet: its A1 range, where data starts, and known columns.

    ``data_start`` is the 0-based index into the fetched values of the
    first data row. Row 0 is always the header; anything between the
    header and ``data_start`` is annotation rows kept by the sheet owners.
    """

    name: str
    range: str
    data_start: int
    required_columns: tuple = ()
    optional_columns: tuple = ()
    id_column: str = ""

    @property
    def columns(self) -> tuple:
        return self.required_columns + self.optional_columns


# Columns the workflow reads and writes. Missing ones break a feature.
CAMPAIGN_COLUMNS_REQUIRED: tuple = (
    "id_campaign",
    "id_influencer",
    "name",
    "status_dashboard",
    "platform",
    "spend_jpy",
    "date_plan",
    "date_draft",
    "date_live",
    "date_deal_closed",
    "date_status_updated",
    "url_plan",
    "url_draft",
    "url_content",
    "message_dashboard",
    "log_status",
    "log_events",
)

# Pass-through analytics / contract columns. Surfaced as campaignData.
CAMPAIGN_PASSTHROUGH_COLUMNS: tuple = (
    "id_promo",
    "contact_email",
    "url_channel",
    "group",
    "followers",
    "spend_usd",
    "imp_est",
    "imp_actual",
    "url_utm",
    "payout_form_link",
    "spend_jpy_taxed",
    "is_live",
    "genre",
    "tier",
    "platform_tier",
    "roi_positive",
    "handle",
    "dri",
    "repurposable",
    "group_platform",
    "channel_image",
    "utm_campaign",
    "month_date_live",
    "yyyy-mm-ww",
    "payout_done",
    "group_booking",
    "mode_id_campaign",
    "Gift Sent",
    "Contract Form Submitted",
    "Plan Submitted",
    "Draft Submitted",
    "Live Video Submitted",
    "Payout Form Submitted",
    "utm_poc",
    "utm_platform",
    "utm_web_domain",
    "utm_time_period",
    "utm_url_bitly",
    "url_main_form",
    "url_payout_form",
    "output",
    "is_row_added",
    "count_id_influencer",
    "noted_influencers",
)

CAMPAIGN_COLUMNS_OPTIONAL: tuple = (
    "email",
    "password_dashboard",
    "インフルエンサー名",
    "influencer_name",
    "template",
    "notes",
    "status_notes",
    "contract_name_dashboard",
    "requests_dashboard",
    "chat_history",
) + CAMPAIGN_PASSTHROUGH_COLUMNS

SELECTED_COLUMNS: tuple = (
    "id_influencer",
    "name",
    "contact_email",
    "platform",
    "sender",
    "had_response",
    "status",
    "date_outreach",
)

SELECTED_COLUMNS_OPTIONAL: tuple = (
    "インフルエンサー名",
    "influencer_name",
)

TEMPLATE_COLUMNS: tuple = (
    "id",
    "name",
    "conditions_json",
    "subject",
    "body",
)


def build_sheet_specs(campaigns_range: str = "campaigns!A:BT") -> dict[str, SheetSpec]:
    """Return the spec table, honouring a configured campaigns range."""
    return {
        CAMPAIGNS_SHEET: SheetSpec(
            name=sheet_name_of(campaigns_range) or CAMPAIGNS_SHEET,
            range=campaigns_range,
            data_start=4,
            required_columns=CAMPAIGN_COLUMNS_REQUIRED,
            optional_columns=CAMPAIGN_COLUMNS_OPTIONAL,
            id_column="id_campaign",
        ),
        SELECTED_SHEET: SheetSpec(
            name=SELECTED_SHEET,
            range=f"{SELECTED_SHEET}!A:Z",
            data_start=1,
            required_columns=SELECTED_COLUMNS,
            optional_columns=SELECTED_COLUMNS_OPTIONAL,
            id_column="id_influencer",
        ),
        TEMPLATES_SHEET: SheetSpec(
            name=TEMPLATES_SHEET,
            range=f"{TEMPLATES_SHEET}!A:E",
            data_start=1,
            required_columns=TEMPLATE_COLUMNS,
            id_column="id",
        ),
    }


def sheet_name_of(a1_range: str) -> str:
    """'campaigns!A:BT' → 'campaigns'; quoted names are unquoted."""
    if "!" not in a1_range:
        return ""
    return a1_range.split("!", 1)[0].strip("'")


def start_column_of(a1_range: str) -> str:
    """'campaigns!C:BT' → 'C'. Defaults to 'A'."""
    cells = a1_range.split("!", 1)[-1]
    letters = ""
    for ch in cells:
        if ch.isalpha():
            letters += ch.upper()
        else:
            break
    return letters or "A"


def column_letter(index: int) -> str:
    """0-based column index → A1 letters (0 → A, 25 → Z, 26 → AA)."""
    letters = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def column_index(letters: str) -> int:
    """A1 letters → 0-based index."""
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


@dataclass
class HeaderReport:
    sheet: str
    missing_required: list = field(default_factory=list)
    missing_optional: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_required

    def to_dict(self) -> dict:
        return {
            "sheet": self.sheet,
            "ok": self.ok,
            "missing_required": self.missing_required,
            "missing_optional": self.missing_optional,
        }
