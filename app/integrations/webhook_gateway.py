"""
Outbound Webhook Gateway (Zapier).

All outbound webhook POSTs go through this class. Zapier turns each
event into an email to the influencer or the partnerships team.

Events and their endpoint settings:
    revision_request         ZAPIER_WEBHOOK_REVISION
    reminder                 ZAPIER_WEBHOOK_REMINDER
    contract_info_submitted  ZAPIER_CONTRACT_WEBHOOK_URL (+ X-Webhook-Secret)

Callers always get a WebhookResult back; this class never raises for
network or HTTP failures. An unconfigured endpoint is a logged no-op
with ok=False.

Testability: pass a mock `session` to WebhookGateway() in tests instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time

import requests

logger = logging.getLogger(__name__)

# ── Default request timeout ────────────────────────────────────────────────
_DEFAULT_TIMEOUT = 10

# ── Fixed sender metadata merged into every notification payload ───────────
DEFAULT_SENDER_NAME = "Speakeasy Labs, Inc. マーケティングチーム"
DEFAULT_SUBJECT_PREFIX = "[AI英会話スピークPR]"

EVENT_REVISION_REQUEST = "revision_request"
EVENT_REMINDER = "reminder"
EVENT_CONTRACT_INFO = "contract_info_submitted"


class WebhookResult:
    """Structured return value from WebhookGateway calls.

    Attributes:
        ok:          True if the POST returned HTTP 2xx.
        status_code: HTTP status code (None if skipped or network failure).
        error:       Human-readable error message or None.
        duration_ms: Round-trip latency in milliseconds.
    """

    def __init__(self, ok: bool, status_code: int | None, error: str | None, duration_ms: int = 0) -> None:
        self.ok = ok
        self.status_code = status_code
        self.error = error
        self.duration_ms = duration_ms

    def to_dict(self) -> dict:
        return {"ok": self.ok, "status": self.status_code, "error": self.error}


class WebhookGateway:
    """Zapier webhook client.

    Usage:
        gw = WebhookGateway(urls={"reminder": "https://hooks.zapier.com/..."})
        result = gw.trigger("reminder", {"influencer": {...}, "item_type": "構成案"})
    """

    def __init__(
        self,
        urls: dict[str, str] | None = None,
        *,
        secret: str = "",
        dashboard_url: str = "https://musubime.app",
        support_email: str = "partnerships_jp@usespeak.com",
        session: requests.Session | None = None,
    ) -> None:
        self.urls = {k: v for k, v in (urls or {}).items() if v}
        self.secret = secret
        self.dashboard_url = dashboard_url
        self.support_email = support_email
        self._session: requests.Session | None = session

    @classmethod
    def from_config(cls, config, session=None) -> "WebhookGateway":
        return cls(
            {
                EVENT_REVISION_REQUEST: config.get("ZAPIER_WEBHOOK_REVISION", ""),
                EVENT_REMINDER: config.get("ZAPIER_WEBHOOK_REMINDER", ""),
                EVENT_CONTRACT_INFO: config.get("ZAPIER_CONTRACT_WEBHOOK_URL", ""),
            },
            secret=config.get("ZAPIER_WEBHOOK_SECRET", ""),
            dashboard_url=config.get("DASHBOARD_URL", "https://musubime.app"),
            support_email=config.get("SUPPORT_EMAIL", "partnerships_jp@usespeak.com"),
            session=session,
        )

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def is_configured(self, event: str) -> bool:
        return event in self.urls

    # ── Calls ────────────────────────────────────────────────────────────────

    def _post(self, event: str, body: dict, headers: dict | None = None) -> WebhookResult:
        url = self.urls.get(event)
        if not url:
            logger.info("Webhook for '%s' not configured. Skipping.", event,
                        extra={"event_type": event})
            return WebhookResult(False, None, "not_configured")

        start = time.time()
        try:
            resp = self.session.post(
                url,
                json=body,
                headers={"Content-Type": "application/json", **(headers or {})},
                timeout=_DEFAULT_TIMEOUT,
            )
        except requests.RequestException as exc:
            duration = int((time.time() - start) * 1000)
            logger.warning("Webhook '%s' failed: %s", event, exc, extra={"event_type": event})
            return WebhookResult(False, None, str(exc), duration)

        duration = int((time.time() - start) * 1000)
        ok = 200 <= resp.status_code < 300
        logger.info("Webhook POST %s: %s", event, resp.status_code,
                    extra={"event_type": event, "duration_ms": duration})
        return WebhookResult(ok, resp.status_code, None if ok else f"HTTP {resp.status_code}", duration)

    def trigger(self, event: str, payload: dict) -> WebhookResult:
        """Send a notification event with the fixed sender metadata.

        Payload keys (all optional): influencer {id, name, email},
        platform_label, item_type, due_date, due_time, feedback_bullets,
        sender_name, subject_prefix, dashboard_url.
        """
        body = {
            "event": event,
            **payload,
            "sender_name": payload.get("sender_name") or DEFAULT_SENDER_NAME,
            "subject_prefix": payload.get("subject_prefix") or DEFAULT_SUBJECT_PREFIX,
            "is_auto": True,
            "dashboard_url": payload.get("dashboard_url") or self.dashboard_url,
            "support_email": self.support_email,
        }
        return self._post(event, body)

    def post_contract(self, payload: dict) -> WebhookResult:
        """Send the onboarding contract info, signed with the shared secret."""
        headers = {"X-Webhook-Secret": self.secret} if self.secret else None
        return self._post(EVENT_CONTRACT_INFO, {"event": EVENT_CONTRACT_INFO, **payload}, headers)
