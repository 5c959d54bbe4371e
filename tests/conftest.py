"""
Shared pytest fixtures for the Musubime test suite.

Provides:
    - app: Flask application (session-scoped)
    - sheets: in-memory Sheets service installed for every test (autouse)
    - client: Flask test client (function-scoped)
    - campaign_row / selected_row: row factories with realistic defaults
    - seed_campaigns / seed_selected: load rows into the fake sheet
    - read_only: swap in read-only (API key) credentials
    - unconfigured: drop all Sheets credentials
"""

import copy
from unittest.mock import MagicMock

import pytest

from app import create_app
from app.integrations.sheets_gateway import SheetsGateway
from app.integrations.webhook_gateway import (
    EVENT_CONTRACT_INFO,
    EVENT_REMINDER,
    EVENT_REVISION_REQUEST,
    WebhookGateway,
)
from app.services import template_service
from app.services.jwt_service import generate_access_token
from app.services.registry import get_services
from app.services.sheet_schema import (
    CAMPAIGN_COLUMNS_OPTIONAL,
    CAMPAIGN_COLUMNS_REQUIRED,
    SELECTED_COLUMNS,
    SELECTED_COLUMNS_OPTIONAL,
    column_index,
)

CAMPAIGN_HEADER = list(CAMPAIGN_COLUMNS_REQUIRED + CAMPAIGN_COLUMNS_OPTIONAL)
SELECTED_HEADER = list(SELECTED_COLUMNS + SELECTED_COLUMNS_OPTIONAL)

# Rows 2-4 of the campaigns sheet hold notes for the humans editing it
ANNOTATION_ROWS = [
    ["ID (auto)", "ID (auto)", "表示名"],
    ["do not edit"],
    [],
]


# ── Fake Google Sheets client ────────────────────────────────────────────


class _Call:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class FakeSheetsService:
    """In-memory stand-in for ``build("sheets", "v4")``.

    Supports ``spreadsheets().values().get(...)`` and
    ``spreadsheets().values().batchUpdate(...)``. Writes are applied to
    the grids, so a later read sees them, and recorded in ``write_calls``.
    """

    def __init__(self, grids: dict | None = None):
        self.grids: dict[str, list[list[str]]] = grids or {}
        self.get_calls: list[str] = []
        self.write_calls: list[dict] = []

    # discovery-client chain
    def spreadsheets(self):
        return self

    def values(self):
        return self

    def get(self, spreadsheetId, range):
        self.get_calls.append(range)
        name = range.split("!", 1)[0].strip("'")
        return _Call(lambda: {"values": copy.deepcopy(self.grids.get(name, []))})

    def batchUpdate(self, spreadsheetId, body):
        self.write_calls.append(copy.deepcopy(body))
        return _Call(lambda: self._apply(body))

    def _apply(self, body: dict) -> dict:
        updated = 0
        for item in body.get("data", []):
            sheet, cells = item["range"].split("!", 1)
            sheet = sheet.strip("'").replace("''", "'")
            start = cells.split(":", 1)[0]
            letters = "".join(ch for ch in start if ch.isalpha())
            row0 = int("".join(ch for ch in start if ch.isdigit())) - 1
            col0 = column_index(letters)
            grid = self.grids.setdefault(sheet, [])
            for r, values in enumerate(item["values"]):
                while len(grid) <= row0 + r:
                    grid.append([])
                row = grid[row0 + r]
                while len(row) < col0 + len(values):
                    row.append("")
                for c, value in enumerate(values):
                    row[col0 + c] = "" if value is None else str(value)
                    updated += 1
        return {"totalUpdatedCells": updated}

    # test helpers
    def records(self, sheet: str, data_start: int = 4) -> list[dict]:
        grid = self.grids.get(sheet, [])
        if not grid:
            return []
        header = grid[0]
        return [
            {h: (row[i] if i < len(row) else "") for i, h in enumerate(header)}
            for row in grid[data_start:]
        ]

    def record(self, sheet: str, id_column: str, id_value: str, data_start: int = 4) -> dict:
        for rec in self.records(sheet, data_start):
            if rec.get(id_column) == id_value:
                return rec
        raise KeyError(f"{id_column}={id_value} not in {sheet}")

    @property
    def written_ranges(self) -> list[str]:
        return [d["range"] for call in self.write_calls for d in call.get("data", [])]


def campaign_grid(rows: list[dict]) -> list[list[str]]:
    grid = [list(CAMPAIGN_HEADER)] + [list(r) for r in ANNOTATION_ROWS]
    grid.extend([str(row.get(col, "")) for col in CAMPAIGN_HEADER] for row in rows)
    return grid


def selected_grid(rows: list[dict]) -> list[list[str]]:
    grid = [list(SELECTED_HEADER)]
    grid.extend([str(row.get(col, "")) for col in SELECTED_HEADER] for row in rows)
    return grid


# ── App fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(autouse=True)
def sheets(app):
    """Per-test: fresh fake spreadsheet, empty cache, default templates."""
    with app.app_context():
        services = get_services()
        fake = FakeSheetsService()
        services.install_sheets_service(fake)
        services.strict_transitions = False
        template_service.reset_templates()
        yield fake
        services.llm = None
        services.cache.clear()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Data fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def campaign_row():
    """Factory for a campaigns-sheet row (dict keyed by column)."""
    def _make(**overrides):
        row = {
            "id_campaign": "C-001",
            "id_influencer": "inf-1",
            "name": "山田花子",
            "status_dashboard": "plan_submitted",
            "platform": "yt",
            "spend_jpy": "¥50,000",
            "date_plan": "2024-03-05",
            "date_draft": "2024-03-20",
            "date_live": "2024-04-01",
            "date_status_updated": "2024-03-01T09:00:00+00:00",
            "url_plan": "https://docs.example.com/plan",
            "contact_email": "hanako@example.com",
            "password_dashboard": "pass123",
        }
        row.update(overrides)
        return row
    return _make


@pytest.fixture()
def selected_row():
    def _make(**overrides):
        row = {
            "id_influencer": "inf-1",
            "name": "山田花子",
            "contact_email": "hanako@example.com",
            "platform": "yt",
            "sender": "佐藤",
            "had_response": "",
            "status": "selected",
            "date_outreach": "",
        }
        row.update(overrides)
        return row
    return _make


@pytest.fixture()
def seed_campaigns(sheets):
    """Load campaign rows into the fake sheet (replaces previous content)."""
    def _seed(*rows):
        sheets.grids["campaigns"] = campaign_grid(list(rows))
        get_services().cache.clear()
        return sheets.grids["campaigns"]
    return _seed


@pytest.fixture()
def seed_selected(sheets):
    def _seed(*rows):
        sheets.grids["selected"] = selected_grid(list(rows))
        get_services().cache.clear()
        return sheets.grids["selected"]
    return _seed


@pytest.fixture()
def read_only(sheets):
    """Same fake data, but credentials that cannot write (API key mode)."""
    get_services().install_sheets_service(sheets, write_capable=False)
    return sheets


@pytest.fixture()
def unconfigured(app):
    """No spreadsheet id and no credentials at all."""
    services = get_services()
    services.sheets = SheetsGateway("")
    services.store.gateway = services.sheets
    services.cache.clear()
    return services


# ── Outbound / auth fixtures ─────────────────────────────────────────────


@pytest.fixture()
def webhooks(app):
    """Configure every Zapier endpoint against a mocked requests.Session.

    Yields the mock session; ``session.post.call_args_list`` holds the
    delivered payloads.
    """
    services = get_services()
    original = services.webhooks
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=200)
    services.webhooks = WebhookGateway(
        {
            EVENT_REVISION_REQUEST: "https://hooks.example.com/revision",
            EVENT_REMINDER: "https://hooks.example.com/reminder",
            EVENT_CONTRACT_INFO: "https://hooks.example.com/contract",
        },
        secret="s3cret",
        session=session,
    )
    yield session
    services.webhooks = original


@pytest.fixture()
def auth_enabled(app):
    """Enforce the login/admin decorators for one test."""
    app.config["API_AUTH_ENABLED"] = True
    yield
    app.config["API_AUTH_ENABLED"] = False


def _bearer(app, user_id, role, name=""):
    with app.app_context():
        token = generate_access_token(user_id, role, name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(app):
    return _bearer(app, "admin", "admin", "Admin")


@pytest.fixture()
def influencer_headers(app):
    return _bearer(app, "inf-1", "influencer", "山田花子")
