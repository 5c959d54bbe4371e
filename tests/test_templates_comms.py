"""
Outreach tests — template rules, message generation, marking and sending.

SMTP is never contacted: MAIL_SERVER is unset in testing (log-only
mode) and the SMTP path is exercised with smtplib.SMTP patched.
"""

import json
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from app.services import template_service
from app.services.template_service import TemplateRule, expand_outreach_type, expand_platform, render_message


# ═════════════════════════════════════════════════════════════════════════════
# Rule matching & rendering
# ═════════════════════════════════════════════════════════════════════════════


class TestTemplateRules:
    def _rule(self, *conditions):
        return TemplateRule.from_dict({
            "id": 1, "name": "r",
            "conditions": [{"field": f, "operator": op, "value": v} for f, op, v in conditions],
        })

    def test_all_conditions_must_hold(self):
        rule = self._rule(("platform", "=", "yt"), ("outreachType", "=", "リーチアウト"))
        assert rule.matches("yt", "リーチアウト", False)
        assert not rule.matches("yt", "PR準備", False)

    def test_operators(self):
        assert self._rule(("platform", "!=", "tw")).matches("yt", "", False)
        assert self._rule(("outreachType", "contains", "アウト")).matches("yt", "リーチアウト", False)
        assert self._rule(("previousContact", "=", "true")).matches("yt", "", True)

    def test_unknown_operator_never_matches(self):
        assert not self._rule(("platform", "~", "yt")).matches("yt", "", False)

    def test_no_conditions_matches_everything(self):
        assert self._rule().matches("bl", "anything", True)

    def test_candidate_expansion(self):
        assert expand_platform("yts") == ["yts", "sv"]
        assert expand_platform("") == ["yt"]
        assert "1st time outreach" in expand_outreach_type("リーチアウト")

    def test_render_with_placeholders(self):
        rendered = render_message("花子", "yt", "リーチアウト", False, "佐藤")
        assert rendered["subject"] == "スピークのPR依頼｜花子様"
        assert rendered["body"].startswith("花子様\n初めまして。")
        assert rendered["body"].endswith("佐藤")

    def test_returning_greeting(self):
        rendered = render_message("花子", "yt", "リーチアウト", True, "佐藤")
        assert "お世話になっております" in rendered["body"]

    def test_short_video_falls_through_to_sv_rule(self):
        rendered = render_message("花子", "yts", "リーチアウト", False, "佐藤")
        assert rendered["templateId"] == 2

    def test_no_match_returns_diagnostic(self):
        rendered = render_message("花子", "bl", "PR準備", False, "佐藤")
        assert rendered["subject"] == "Template Error - 花子様"
        assert "- Platform: bl" in rendered["body"]
        assert rendered["templateId"] is None


# ═════════════════════════════════════════════════════════════════════════════
# Templates API
# ═════════════════════════════════════════════════════════════════════════════


class TestTemplatesApi:
    def test_defaults_when_sheet_empty(self, client):
        res = client.get("/api/v1/templates")
        assert res.status_code == 200
        assert [t["id"] for t in res.get_json()["templates"]] == [1, 2, 3, 4, 5]

    def test_save_persists_to_sheet(self, client, sheets):
        templates = [{
            "id": 9, "name": "ブログ",
            "conditions": [{"field": "platform", "operator": "=", "value": "bl"}],
            "subject": "件名", "body": "本文 {influencerName}",
        }]
        res = client.post("/api/v1/templates", json={"action": "save", "templates": templates})
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Templates saved successfully"
        assert body["persisted"] is True
        assert body["count"] == 1

        record = sheets.record("templates", "id", "9", data_start=1)
        assert json.loads(record["conditions_json"])[0]["value"] == "bl"

        listed = client.get("/api/v1/templates").get_json()["templates"]
        assert [t["id"] for t in listed] == [9]

    def test_read_only_saves_in_memory(self, client, read_only):
        res = client.post("/api/v1/templates", json={"action": "save", "templates": [{"id": 7, "name": "x"}]})
        assert res.get_json()["persisted"] is False
        assert read_only.write_calls == []
        assert [t["id"] for t in client.get("/api/v1/templates").get_json()["templates"]] == [7]

    def test_unconfigured_saves_in_memory(self, client, unconfigured):
        res = client.post("/api/v1/templates", json={"action": "save", "templates": [{"id": 3, "name": "x"}]})
        assert res.status_code == 200
        assert res.get_json()["persisted"] is False

    def test_invalid_action(self, client):
        res = client.post("/api/v1/templates", json={"action": "delete"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid action"

    def test_templates_must_be_list(self, client):
        res = client.post("/api/v1/templates", json={"action": "save", "templates": "nope"})
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Comms API
# ═════════════════════════════════════════════════════════════════════════════


class TestSelectedInfluencers:
    def test_latest_row_wins(self, client, seed_selected, selected_row):
        seed_selected(
            selected_row(),
            selected_row(id_influencer="inf-2", name="太郎"),
            selected_row(id_influencer="inf-2", name="太郎", status="Reached out"),
            selected_row(id_influencer="inf-3", name="", status="SELECTED"),
        )
        res = client.get("/api/v1/comms?action=getSelectedInfluencers")
        assert res.status_code == 200
        influencers = res.get_json()["influencers"]
        assert [i["id"] for i in influencers] == ["inf-1", "inf-3"]
        assert influencers[1]["name"] == "【名前未入力】"

    def test_previous_contact_flag(self, client, seed_selected, selected_row):
        seed_selected(selected_row(had_response="TRUE"))
        influencer = client.get("/api/v1/comms?action=getSelectedInfluencers").get_json()["influencers"][0]
        assert influencer["previousContact"] is True
        assert influencer["teamMemberName"] == "佐藤"

    def test_invalid_get_action(self, client):
        res = client.get("/api/v1/comms?action=other")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid action parameter"


class TestGenerateAndMark:
    def test_generate_messages(self, client, seed_selected, selected_row):
        seed_selected(selected_row(), selected_row(id_influencer="inf-2", name="太郎", platform="pc"))
        res = client.post("/api/v1/comms", json={
            "action": "generateMessages", "influencerIds": ["inf-2", "inf-unknown"],
            "teamMemberName": "鈴木", "templateType": "リーチアウト",
        })
        assert res.status_code == 200
        messages = res.get_json()["messages"]
        assert len(messages) == 1
        assert messages[0]["influencerName"] == "太郎"
        assert messages[0]["subject"] == "スピークのPR依頼｜太郎様"
        assert "鈴木" in messages[0]["body"]

    def test_generate_strips_requested_ids(self, client, seed_selected, selected_row):
        seed_selected(selected_row(), selected_row(id_influencer="inf-2", name="太郎"))
        messages = client.post("/api/v1/comms", json={
            "action": "generateMessages", "influencerIds": [" inf-2 ", "inf-1\n"], "teamMemberName": "鈴木",
        }).get_json()["messages"]
        assert [m["influencerId"] for m in messages] == ["inf-2", "inf-1"]

    def test_custom_message_replaces_body(self, client, seed_selected, selected_row):
        seed_selected(selected_row())
        messages = client.post("/api/v1/comms", json={
            "action": "generateMessages", "influencerIds": ["inf-1"], "customMessage": "自由文",
        }).get_json()["messages"]
        assert messages[0]["body"] == "自由文"

    def test_generate_requires_ids(self, client):
        res = client.post("/api/v1/comms", json={"action": "generateMessages"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "influencerIds is required"

    def test_mark_as_sent_updates_latest_row(self, client, sheets, seed_selected, selected_row):
        seed_selected(selected_row(status="Reached out", date_outreach="2024-01-01"), selected_row())
        res = client.post("/api/v1/comms", json={"action": "markAsSent", "influencerId": "inf-1"})
        assert res.status_code == 200
        assert res.get_json()["message"] == "Successfully marked as sent"

        grid = sheets.grids["selected"]
        header = grid[0]
        assert grid[1][header.index("date_outreach")] == "2024-01-01"
        assert grid[2][header.index("status")] == "Reached out"
        assert grid[2][header.index("date_outreach")] == res.get_json()["dateOutreach"]

    def test_mark_requires_id(self, client):
        res = client.post("/api/v1/comms", json={"action": "markAsSent"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Influencer ID is required"

    def test_mark_unknown_influencer(self, client, seed_selected, selected_row):
        seed_selected(selected_row())
        res = client.post("/api/v1/comms", json={"action": "markAsSent", "influencerId": "nobody"})
        assert res.status_code == 404

    def test_invalid_post_action(self, client):
        res = client.post("/api/v1/comms", json={"action": "explode"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid action"


class TestSendEmails:
    def _message(self, **overrides):
        msg = {"influencerId": "inf-1", "email": "hanako@example.com", "subject": "件名", "body": "本文"}
        msg.update(overrides)
        return msg

    def test_dev_mode_sends_and_marks(self, client, sheets, seed_selected, selected_row):
        seed_selected(selected_row())
        res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": [self._message()]})
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Successfully sent 1 emails"
        assert body["markedCount"] == 1
        header = sheets.grids["selected"][0]
        assert sheets.grids["selected"][1][header.index("status")] == "Reached out"

    def test_partial_failure_is_success(self, client, seed_selected, selected_row):
        seed_selected(selected_row())
        res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": [
            self._message(), self._message(influencerId="inf-2", email="broken"),
        ]})
        assert res.status_code == 200
        body = res.get_json()
        assert body["successCount"] == 1
        assert body["failureCount"] == 1
        assert body["results"][1]["success"] is False

    def test_all_failed_is_500(self, client, sheets):
        res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": [
            self._message(email="nope"), self._message(email=""),
        ]})
        assert res.status_code == 500
        body = res.get_json()
        assert body["error"] == "Failed to send emails"
        assert len(body["details"]["results"]) == 2
        assert sheets.write_calls == []

    def test_no_messages(self, client):
        res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": []})
        assert res.status_code == 400

    def test_mark_failure_does_not_fail_batch(self, client, seed_selected, selected_row):
        seed_selected(selected_row(id_influencer="someone-else"))
        res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": [self._message()]})
        assert res.status_code == 200
        assert res.get_json()["markedCount"] == 0

    @pytest.fixture()
    def smtp_configured(self, app):
        app.config["MAIL_SERVER"] = "smtp.example.com"
        yield
        app.config["MAIL_SERVER"] = None

    def test_smtp_delivery(self, client, seed_selected, selected_row, smtp_configured):
        seed_selected(selected_row())
        smtp = MagicMock()
        with patch("app.services.email_service.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.__enter__.return_value = smtp
            res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": [self._message()]})
        assert res.status_code == 200
        smtp.starttls.assert_called_once()
        sent = smtp.send_message.call_args.args[0]
        assert sent["To"] == "hanako@example.com"

    def test_smtp_failure_reported(self, client, sheets, smtp_configured):
        with patch("app.services.email_service.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "down")):
            res = client.post("/api/v1/comms", json={"action": "sendEmails", "messages": [self._message()]})
        assert res.status_code == 500
        assert "down" in res.get_json()["details"]["results"][0]["error"]
        assert sheets.write_calls == []


def test_reset_restores_defaults(unconfigured):
    template_service.save_templates([{"id": 42, "name": "only"}])
    template_service.reset_templates()
    assert [t["id"] for t in template_service.load_templates()] == [1, 2, 3, 4, 5]
