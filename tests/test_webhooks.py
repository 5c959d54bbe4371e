"""Zapier webhook gateway and post-commit effect dispatch."""

from unittest.mock import MagicMock

import requests

from app.integrations.webhook_gateway import (
    DEFAULT_SENDER_NAME,
    DEFAULT_SUBJECT_PREFIX,
    EVENT_CONTRACT_INFO,
    EVENT_REMINDER,
    EVENT_REVISION_REQUEST,
    WebhookGateway,
)
from app.services.side_effects import PostCommitEffect, dispatch_effects


def _gateway(status_code=200, **kwargs):
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=status_code)
    urls = {
        EVENT_REVISION_REQUEST: "https://hooks.example.com/revision",
        EVENT_REMINDER: "https://hooks.example.com/reminder",
        EVENT_CONTRACT_INFO: "https://hooks.example.com/contract",
    }
    return WebhookGateway(urls, session=session, **kwargs), session


class TestTrigger:
    def test_payload_gets_sender_metadata(self):
        gw, session = _gateway()
        result = gw.trigger(EVENT_REMINDER, {"item_type": "構成案", "due_date": "2024-03-05"})
        assert result.ok is True
        assert result.status_code == 200

        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://hooks.example.com/reminder"
        assert body["event"] == EVENT_REMINDER
        assert body["item_type"] == "構成案"
        assert body["sender_name"] == DEFAULT_SENDER_NAME
        assert body["subject_prefix"] == DEFAULT_SUBJECT_PREFIX
        assert body["is_auto"] is True
        assert session.post.call_args.kwargs["timeout"] == 10

    def test_caller_overrides_sender(self):
        gw, session = _gateway()
        gw.trigger(EVENT_REMINDER, {"sender_name": "佐藤", "dashboard_url": "https://x.example.com"})
        body = session.post.call_args.kwargs["json"]
        assert body["sender_name"] == "佐藤"
        assert body["dashboard_url"] == "https://x.example.com"

    def test_unconfigured_event_is_skipped(self):
        session = MagicMock()
        gw = WebhookGateway({EVENT_REMINDER: ""}, session=session)
        result = gw.trigger(EVENT_REMINDER, {})
        assert result.to_dict() == {"ok": False, "status": None, "error": "not_configured"}
        assert not gw.is_configured(EVENT_REMINDER)
        session.post.assert_not_called()

    def test_http_error_is_reported(self):
        gw, _ = _gateway(status_code=500)
        result = gw.trigger(EVENT_REVISION_REQUEST, {})
        assert result.ok is False
        assert result.error == "HTTP 500"

    def test_network_error_is_reported(self):
        gw, session = _gateway()
        session.post.side_effect = requests.ConnectionError("refused")
        result = gw.trigger(EVENT_REVISION_REQUEST, {})
        assert result.ok is False
        assert result.status_code is None
        assert "refused" in result.error


class TestContract:
    def test_secret_header(self):
        gw, session = _gateway(secret="s3cret")
        gw.post_contract({"campaignId": "C-001"})
        headers = session.post.call_args.kwargs["headers"]
        assert headers["X-Webhook-Secret"] == "s3cret"
        assert headers["Content-Type"] == "application/json"
        assert session.post.call_args.kwargs["json"]["event"] == EVENT_CONTRACT_INFO

    def test_no_secret_no_header(self):
        gw, session = _gateway()
        gw.post_contract({})
        assert "X-Webhook-Secret" not in session.post.call_args.kwargs["headers"]


class TestDispatch:
    def test_routes_by_event(self):
        gw, session = _gateway(secret="s3cret")
        summaries = dispatch_effects([
            PostCommitEffect(EVENT_REMINDER, {"item_type": "初稿"}),
            PostCommitEffect(EVENT_CONTRACT_INFO, {"campaignId": "C-001"}),
        ], gw)
        assert [s["event"] for s in summaries] == [EVENT_REMINDER, EVENT_CONTRACT_INFO]
        assert all(s["ok"] for s in summaries)
        contract_call = session.post.call_args_list[1]
        assert contract_call.kwargs["headers"]["X-Webhook-Secret"] == "s3cret"

    def test_unexpected_exception_is_contained(self):
        gw = MagicMock()
        gw.trigger.side_effect = RuntimeError("boom")
        summaries = dispatch_effects([PostCommitEffect(EVENT_REMINDER, {})], gw)
        assert summaries == [{"event": EVENT_REMINDER, "ok": False, "status": None, "error": "boom"}]

    def test_no_effects(self):
        gw, session = _gateway()
        assert dispatch_effects([], gw) == []
        assert dispatch_effects(None, gw) == []
        session.post.assert_not_called()

    def test_from_config_drops_empty_urls(self, app):
        gw = WebhookGateway.from_config({"ZAPIER_WEBHOOK_REMINDER": "https://hooks.example.com/r"})
        assert gw.is_configured(EVENT_REMINDER)
        assert not gw.is_configured(EVENT_REVISION_REQUEST)
        assert gw.dashboard_url == "https://musubime.app"
