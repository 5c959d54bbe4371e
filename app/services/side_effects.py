"""
Post-commit side effects.

Workflow operations never call webhooks themselves. They return a list
of PostCommitEffect values next to their result; the blueprint hands
that list to dispatch_effects() once the sheet write has succeeded.

Dispatch is best-effort: a failing webhook is logged and reported in
the returned summary, and never fails or rolls back the status change.
"""

import logging
from dataclasses import dataclass, field

from app.integrations.webhook_gateway import EVENT_CONTRACT_INFO, WebhookGateway

logger = logging.getLogger(__name__)

KIND_WEBHOOK = "webhook"


@dataclass(frozen=True)
class PostCommitEffect:
    event: str
    payload: dict = field(default_factory=dict)
    kind: str = KIND_WEBHOOK


def dispatch_effects(effects: list[PostCommitEffect], webhooks: WebhookGateway) -> list[dict]:
    """Run every effect, swallowing failures. Returns one summary per effect."""
    results = []
    for effect in effects or []:
        try:
            if effect.event == EVENT_CONTRACT_INFO:
                result = webhooks.post_contract(effect.payload)
            else:
                result = webhooks.trigger(effect.event, effect.payload)
            summary = {"event": effect.event, **result.to_dict()}
        except Exception as exc:
            logger.exception("Side effect '%s' failed", effect.event, extra={"event_type": effect.event})
            summary = {"event": effect.event, "ok": False, "status": None, "error": str(exc)}
        if not summary["ok"]:
            logger.warning("Side effect '%s' not delivered: %s", effect.event, summary["error"],
                           extra={"event_type": effect.event})
        results.append(summary)
    return results
