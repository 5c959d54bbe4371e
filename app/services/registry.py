"""
Per-app service container.

Builds the long-lived collaborators once in create_app() and stores them
on ``app.extensions["musubime"]``:

    cache     SheetCache (TTL read cache)
    sheets    SheetsGateway (Google API client)
    store     RowStore (named-column reads/writes)
    webhooks  WebhookGateway (Zapier)
    llm       LLMGateway (chat + embeddings), built lazily

Services fetch them with get_services() inside a request or app context.
Tests swap the Sheets client with install_sheets_service().
"""

import logging
from dataclasses import dataclass, field

from flask import current_app

from app.integrations.sheets_gateway import SheetsGateway
from app.integrations.webhook_gateway import WebhookGateway
from app.services.cache_service import SheetCache
from app.services.row_store import RowStore
from app.services.sheet_schema import build_sheet_specs

logger = logging.getLogger(__name__)

EXTENSION_KEY = "musubime"


@dataclass
class Services:
    cache: SheetCache
    sheets: SheetsGateway
    store: RowStore
    webhooks: WebhookGateway
    strict_transitions: bool = False
    _llm: object = field(default=None, repr=False)

    @property
    def llm(self):
        if self._llm is None:
            from app.ai.gateway import LLMGateway
            self._llm = LLMGateway.from_config(current_app.config)
        return self._llm

    @llm.setter
    def llm(self, gateway) -> None:
        self._llm = gateway

    def install_sheets_service(self, service, write_capable: bool = True) -> None:
        """Replace the Google client (tests, scripts). Clears the read cache."""
        self.sheets = SheetsGateway(
            self.sheets.spreadsheet_id or "injected",
            service=service,
            write_capable=write_capable,
        )
        self.store.gateway = self.sheets
        self.cache.clear()


def init_services(app) -> Services:
    """Build the service container from app.config and register it."""
    cfg = app.config
    cache = SheetCache(ttl=cfg.get("SHEETS_CACHE_TTL", 30), redis_url=cfg.get("REDIS_URL"))
    sheets = SheetsGateway.from_config(cfg)
    store = RowStore(sheets, cache, build_sheet_specs(cfg.get("GOOGLE_SHEETS_RANGE", "campaigns!A:BT")))
    services = Services(
        cache=cache,
        sheets=sheets,
        store=store,
        webhooks=WebhookGateway.from_config(cfg),
        strict_transitions=bool(cfg.get("STRICT_TRANSITIONS")),
    )
    app.extensions[EXTENSION_KEY] = services
    logger.info("Services ready: sheets=%s cache=%s strict_transitions=%s",
                sheets.credential_mode, cache.backend_name, services.strict_transitions)
    return services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def get_store() -> RowStore:
    return get_services().store
