"""
Campaign API tests — reads, status updates, submissions, admin actions,
reminders and onboarding through the HTTP layer.

Every write is checked on the fake sheet itself, not just on the
response body.
"""

import json

import pytest

from app.utils.errors import WRITE_ACCESS_MESSAGE


def _log(record):
    return json.loads(record["log_status"] or "[]")


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


class TestListCampaigns:
    def test_all_campaigns(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(), campaign_row(id_campaign="C-002", id_influencer="inf-2", name="佐藤"))
        res = client.get("/api/v1/campaigns")
        assert res.status_code == 200
        data = res.get_json()
        assert [c["id"] for c in data] == ["C-001", "C-002"]
        assert data[1]["influencerName"] == "佐藤"

    def test_by_user(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(), campaign_row(id_campaign="C-002", id_influencer="inf-2"))
        res = client.post("/api/v1/campaigns", json={"userId": "inf-2"})
        assert res.status_code == 200
        assert [c["id"] for c in res.get_json()] == ["C-002"]

    def test_user_id_required(self, client):
        res = client.post("/api/v1/campaigns", json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "userId is required"

    def test_lossy_fields(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(status_dashboard="", platform="???", spend_jpy="n/a"))
        campaign = client.get("/api/v1/campaigns").get_json()[0]
        assert campaign["status"] == "not_started"
        assert campaign["platform"] == "yt"
        assert campaign["contractedPrice"] == 0

    def test_unconfigured_is_503(self, client, unconfigured):
        res = client.get("/api/v1/campaigns")
        assert res.status_code == 503
        assert res.get_json()["code"] == "ERR_SHEETS_NOT_CONFIGURED"

    def test_refresh_bypasses_cache(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        client.get("/api/v1/campaigns")
        client.get("/api/v1/campaigns")
        assert len(sheets.get_calls) == 1
        client.get("/api/v1/campaigns?refresh=1")
        assert len(sheets.get_calls) == 2


# ═════════════════════════════════════════════════════════════════════════════
# Direct status update
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateStatus:
    def test_update_writes_status_timestamp_and_log(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-1", "newStatus": "draft_creating",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["message"] == "Campaign updated successfully"
        assert body["status"] == "draft_creating"

        record = sheets.record("campaigns", "id_campaign", "C-001")
        assert record["status_dashboard"] == "draft_creating"
        assert record["date_status_updated"] == body["updatedAt"]
        entry = _log(record)[-1]
        assert entry["old_status"] == "plan_submitted"
        assert entry["new_status"] == "draft_creating"
        assert len(sheets.write_calls) == 1

    @pytest.mark.parametrize("target", ["not_started", "completed", "cancelled", "meeting_scheduled"])
    def test_any_enumerated_status_is_accepted(self, client, sheets, seed_campaigns, campaign_row, target):
        seed_campaigns(campaign_row(status_dashboard="scheduled"))
        res = client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-1", "newStatus": target,
        })
        assert res.status_code == 200
        assert sheets.record("campaigns", "id_campaign", "C-001")["status_dashboard"] == target

    def test_with_submission_url(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-1", "newStatus": "draft_submitted",
            "submittedUrl": "https://docs.example.com/draft", "urlType": "draft",
        })
        assert sheets.record("campaigns", "id_campaign", "C-001")["url_draft"] == "https://docs.example.com/draft"

    def test_missing_fields(self, client, sheets):
        res = client.post("/api/v1/campaigns/update", json={"campaignId": "C-001"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "campaignId, influencerId, and newStatus are required"
        assert sheets.write_calls == []

    def test_unknown_status(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-1", "newStatus": "bogus",
        })
        assert res.status_code == 400
        assert sheets.write_calls == []

    def test_wrong_influencer_is_404(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-9", "newStatus": "completed",
        })
        assert res.status_code == 404
        assert sheets.write_calls == []

    def test_read_only_credentials(self, client, read_only, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-1", "newStatus": "completed",
        })
        assert res.status_code == 503
        assert res.get_json()["error"] == WRITE_ACCESS_MESSAGE
        assert read_only.write_calls == []

    def test_missing_status_column_is_upstream_error(self, client, sheets):
        sheets.grids["campaigns"] = [["id_campaign", "id_influencer", "log_status"], [], [], [],
                                     ["C-001", "inf-1", "[]"]]
        res = client.post("/api/v1/campaigns/update", json={
            "campaignId": "C-001", "influencerId": "inf-1", "newStatus": "completed",
        })
        assert res.status_code == 502
        assert sheets.write_calls == []

    def test_non_json_body_rejected(self, client):
        res = client.post("/api/v1/campaigns/update", data="campaignId=C-001",
                          content_type="text/plain")
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════════
# Influencer submission
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmit:
    @pytest.mark.parametrize("current,expected,column", [
        ("plan_creating", "plan_submitted", "url_plan"),
        ("plan_revising", "plan_submitted", "url_plan"),
        ("draft_creating", "draft_submitted", "url_draft"),
        ("draft_revising", "draft_submitted", "url_draft"),
        ("scheduling", "scheduled", "url_content"),
    ])
    def test_submission_table(self, client, sheets, seed_campaigns, campaign_row, current, expected, column):
        seed_campaigns(campaign_row(status_dashboard=current, url_plan=""))
        res = client.post("/api/v1/campaigns/submit", json={
            "campaignId": "C-001", "influencerId": "inf-1", "submittedUrl": "https://example.com/x",
        })
        assert res.status_code == 200
        assert res.get_json()["newStatus"] == expected
        record = sheets.record("campaigns", "id_campaign", "C-001")
        assert record["status_dashboard"] == expected
        assert record[column] == "https://example.com/x"

    def test_resubmission_counts(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(
            status_dashboard="plan_revising",
            log_status=json.dumps([{"new_status": "plan_submitted"}, {"new_status": "plan_revising"}]),
        ))
        client.post("/api/v1/campaigns/submit", json={
            "campaignId": "C-001", "influencerId": "inf-1", "submittedUrl": "https://example.com/v2",
        })
        campaign = client.get("/api/v1/campaigns?refresh=1").get_json()[0]
        assert campaign["submissionCounts"]["plan"] == 2

    def test_no_submission_expected(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(status_dashboard="completed"))
        res = client.post("/api/v1/campaigns/submit", json={
            "campaignId": "C-001", "influencerId": "inf-1", "submittedUrl": "https://example.com/x",
        })
        assert res.status_code == 400
        assert sheets.write_calls == []

    def test_strict_mode_conflict(self, client, sheets, seed_campaigns, campaign_row):
        from app.services.registry import get_services
        get_services().strict_transitions = True
        seed_campaigns(campaign_row(status_dashboard="completed"))
        res = client.post("/api/v1/campaigns/submit", json={
            "campaignId": "C-001", "influencerId": "inf-1", "submittedUrl": "https://example.com/x",
        })
        assert res.status_code == 409
        assert res.get_json()["details"]["currentStatus"] == "completed"


# ═════════════════════════════════════════════════════════════════════════════
# Admin actions
# ═════════════════════════════════════════════════════════════════════════════


class TestAdminActions:
    @pytest.mark.parametrize("action,current,expected", [
        ("approve_plan", "plan_submitted", "draft_creating"),
        ("revise_plan", "plan_submitted", "plan_revising"),
        ("approve_draft", "draft_submitted", "scheduling"),
        ("revise_draft", "draft_submitted", "draft_revising"),
    ])
    def test_action_targets(self, client, sheets, seed_campaigns, campaign_row, action, current, expected):
        seed_campaigns(campaign_row(status_dashboard=current))
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": action,
        })
        assert res.status_code == 200
        assert res.get_json()["newStatus"] == expected
        record = sheets.record("campaigns", "id_campaign", "C-001")
        assert record["status_dashboard"] == expected
        assert _log(record)[-1]["source"] == action

    def test_approve_plan_message(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "approve_plan",
        })
        assert res.get_json()["message"] == "構成案が承認されました。初稿作成に進みます。"

    def test_permissive_by_default(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(status_dashboard="scheduled"))
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "approve_plan",
        })
        assert res.status_code == 200
        assert sheets.record("campaigns", "id_campaign", "C-001")["status_dashboard"] == "draft_creating"

    def test_unknown_action_writes_nothing(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "delete_everything",
        })
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid action type"
        assert sheets.write_calls == []
        assert sheets.get_calls == []

    def test_revision_feedback_and_webhook(self, client, sheets, webhooks, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "revise_plan",
            "feedbackMessage": "冒頭をもっと短く",
        })
        body = res.get_json()
        assert "フィードバック: 冒頭をもっと短く" in body["message"]
        assert body["notifications"] == [{"event": "revision_request", "ok": True, "status": 200, "error": None}]

        messages = json.loads(sheets.record("campaigns", "id_campaign", "C-001")["message_dashboard"])
        assert messages[-1]["type"] == "revision_feedback"
        assert messages[-1]["content"] == "冒頭をもっと短く"

        url = webhooks.post.call_args.args[0]
        payload = webhooks.post.call_args.kwargs["json"]
        assert url == "https://hooks.example.com/revision"
        assert payload["influencer"]["email"] == "hanako@example.com"
        assert payload["item_type"] == "構成案"
        assert payload["feedback_bullets"] == "冒頭をもっと短く"

    def test_webhook_failure_does_not_fail_action(self, client, sheets, webhooks, seed_campaigns, campaign_row):
        webhooks.post.return_value.status_code = 500
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "revise_plan",
        })
        assert res.status_code == 200
        assert res.get_json()["notifications"][0]["ok"] is False
        assert sheets.record("campaigns", "id_campaign", "C-001")["status_dashboard"] == "plan_revising"

    def test_strict_mode_rejects_wrong_source(self, client, sheets, seed_campaigns, campaign_row):
        from app.services.registry import get_services
        get_services().strict_transitions = True
        seed_campaigns(campaign_row(status_dashboard="scheduling"))
        res = client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "approve_plan",
        })
        assert res.status_code == 409
        assert res.get_json()["details"]["allowedFrom"] == ["plan_submitted"]
        assert sheets.write_calls == []


# ═════════════════════════════════════════════════════════════════════════════
# Reminders & onboarding
# ═════════════════════════════════════════════════════════════════════════════


class TestReminder:
    def test_reminder_logs_message_and_notifies(self, client, sheets, webhooks, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(status_dashboard="draft_creating"))
        res = client.post("/api/v1/campaigns/reminder", json={
            "campaignId": "C-001", "influencerId": "inf-1", "content": "初稿の提出期限が近づいています",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "リマインドを送信しました"
        assert body["notifications"][0]["event"] == "reminder"

        messages = json.loads(sheets.record("campaigns", "id_campaign", "C-001")["message_dashboard"])
        assert messages[-1]["type"] == "reminder_sent"

        payload = webhooks.post.call_args.kwargs["json"]
        assert payload["item_type"] == "初稿"
        assert payload["due_date"] == "2024-03-20"
        assert payload["is_auto"] is True

    def test_reminder_without_webhook_config(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = client.post("/api/v1/campaigns/reminder", json={
            "campaignId": "C-001", "influencerId": "inf-1", "message": "hi",
        })
        assert res.status_code == 200
        assert res.get_json()["notifications"][0]["error"] == "not_configured"

    def test_reminder_then_revision_keeps_order(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(message_dashboard="not json"))
        client.post("/api/v1/campaigns/reminder", json={
            "campaignId": "C-001", "influencerId": "inf-1", "content": "X",
        })
        client.post("/api/v1/admin/actions", json={
            "campaignId": "C-001", "influencerId": "inf-1", "action": "revise_plan", "feedbackMessage": "Y",
        })
        messages = json.loads(sheets.record("campaigns", "id_campaign", "C-001")["message_dashboard"])
        assert [(m["type"], m["content"]) for m in messages] == [
            ("reminder_sent", "X"),
            ("revision_feedback", "Y"),
        ]

    def test_reminder_requires_content(self, client):
        res = client.post("/api/v1/campaigns/reminder", json={"campaignId": "C-001", "influencerId": "inf-1"})
        assert res.status_code == 400


class TestOnboarding:
    def _body(self, **overrides):
        body = {
            "campaignId": "C-001",
            "influencerId": "inf-1",
            "contractName": "山田 花子",
            "email": "hanako@example.com",
            "price": "¥80,000",
            "uploadDate": "2024-05-01",
            "planSubmissionDate": "2024-04-10",
            "draftSubmissionDate": "2024-04-20",
            "repurposable": "yes",
        }
        body.update(overrides)
        return body

    def test_onboarding_writes_contract_info(self, client, sheets, webhooks, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(status_dashboard="not_started"))
        res = client.post("/api/v1/campaigns/onboarding", json=self._body())
        assert res.status_code == 200
        assert res.get_json()["message"] == "基本情報が正常に更新されました"

        record = sheets.record("campaigns", "id_campaign", "C-001")
        assert record["status_dashboard"] == "meeting_scheduling"
        assert record["spend_jpy"] == "80000"
        assert record["date_live"] == "2024-05-01"
        assert record["repurposable"] == "TRUE"
        assert record["contract_name_dashboard"] == "山田 花子"

        call = webhooks.post.call_args
        assert call.args[0] == "https://hooks.example.com/contract"
        assert call.kwargs["headers"]["X-Webhook-Secret"] == "s3cret"

    def test_missing_fields(self, client, sheets):
        res = client.post("/api/v1/campaigns/onboarding", json=self._body(email="", uploadDate=""))
        assert res.status_code == 400
        assert set(res.get_json()["details"]) == {"email", "uploadDate"}
        assert sheets.write_calls == []

    def test_invalid_email(self, client, sheets):
        res = client.post("/api/v1/campaigns/onboarding", json=self._body(email="not-an-email"))
        assert res.status_code == 400
        assert sheets.write_calls == []

    def test_invalid_date(self, client, sheets):
        res = client.post("/api/v1/campaigns/onboarding", json=self._body(uploadDate="someday"))
        assert res.status_code == 400
