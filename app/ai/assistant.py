"""
Chat Assistant — campaign-aware Q&A for influencers and admins.

Pipeline:
    1. Campaign context: up to 10 active campaigns of the user + price totals
    2. Docs context: top-5 chunks of docs/info.txt (InfoIndex)
    3. LLM answer via the gateway (gpt-4o-mini, temperature 0.3, 600 tokens,
       last 6 history turns)
    4. Fallback when no real LLM answers:
         source == "typed"  → LLMUnavailableError (HTTP 503)
         otherwise          → canned reply (greeting, FAQ, role, YouTube, default)
"""

import json
import logging
from datetime import datetime, timezone

from flask import current_app

from app.ai.gateway import LLMUnavailableError
from app.ai.rag import InfoIndex
from app.core.exceptions import RowStoreError, SheetsNotConfiguredError
from app.services import campaign_service
from app.services.campaign_assembler import latest_feedback, to_bool
from app.services.registry import get_services
from app.services.status_machine import is_active

logger = logging.getLogger(__name__)

MAX_CONTEXT_CAMPAIGNS = 10
HISTORY_TURNS = 6
DOCS_TOP_K = 5
SERVICE_DOWN_MESSAGE = "すみません、現在サービスに接続できません。しばらくしてからもう一度お試しください。"

PLATFORM_CONTEXT = """
あなたはMusubime（ムスビメ）のAIアシスタントです。Musubimeは、インフルエンサーマーケティングキャンペーンの管理・運用・承認・進行管理を行うワークフロー管理プラットフォームです。AI英会話アプリ「スピーク」のインフルエンサーマーケティング用に作成されました。

## キャンペーンのステータス：英語のkeyについては言及せず、日本語で回答してください
- not_started: 未開始
- meeting_scheduling: 打ち合わせ予約中
- meeting_scheduled: 打ち合わせ予約済み
- plan_creating: 構成案作成中
- plan_submitted: 構成案提出済み
- plan_revising: 構成案修正中
- draft_creating: 初稿作成中
- draft_submitted: 初稿提出済み
- draft_revising: 初稿修正中
- scheduling: 投稿準備中
- scheduled: 投稿済み
- payment_processing: 送金手続き中
- completed: PR完了
- cancelled: PRキャンセル

## サポートするプラットフォーム
YouTube（長編・ショート）、Instagram Reels、TikTok、X (Twitter)、Podcast、Blog

## キャンペーンワークフロー
1. オンボーディング: 基本情報の入力
2. 打ち合わせ調整
3. コンテンツ企画: 構成案の提出と承認
4. コンテンツ制作: 初稿の提出、レビュー、修正
5. 公開: 投稿と投稿URLの報告
6. 支払い処理: 請求書と送金手続き

## 応答のガイドライン
- 日本語で親しみやすく、プロフェッショナルに回答してください
- ユーザーの役割（インフルエンサー・管理者）に応じて適切な情報を提供してください
- わからない場合は、正直に「確認いたします」と答えてください

現在のユーザー情報:
- ユーザーID: {user_id}
- 役割: {user_role}

## コンテキストJSONの利用方法
- 提供されるcampaignsContextには、各キャンペーンのステータス・スケジュール・提出URL・提出状況・支払い状況などが含まれます。
- これらを元に、次のステップや不足している提出物、期日のリマインド、支払い手続きの案内を具体的に提示してください。
- パスワード等の秘密情報は出力しないでください。
"""

OUTPUT_POLICY = """出力ポリシー:
- すべて日本語で回答してください
- 回答はMarkdownで整形してください（見出し、箇条書きなど）
- 金額は日本円で ¥1,234 の形式にフォーマットしてください
- 回答は上記のコンテキスト（キャンペーンJSONとサマリー）を最優先で使用してください
- コンテキストに無い情報は推測せず、「手元のデータでは不明です」と明示してください
- MASTER CONTEXTのプラットフォーム・ステップに厳密に合わせてください
- パスワードなどの秘匿情報は表示しないでください"""


# ── Canned replies ───────────────────────────────────────────────────────────

FAQ_RESPONSES = {
    "campaign_status": {
        "keywords": ["ステータス", "status", "進捗", "状況", "どこまで"],
        "response": (
            "キャンペーンのステータスは以下の段階があります：\n\n"
            "1. **未開始** → **打ち合わせ予約中** → **打ち合わせ予約済み**\n"
            "2. **構成案作成中** → **構成案提出済み** → **構成案修正中**（必要に応じて）\n"
            "3. **初稿作成中** → **初稿提出済み** → **初稿修正中**（必要に応じて）\n"
            "4. **投稿準備中** → **投稿済み**\n"
            "5. **送金手続き中** → **PR完了**\n\n"
            "現在のステータスは、ダッシュボードの「次のステップ」セクションで確認できます。"
        ),
    },
    "submission_process": {
        "keywords": ["提出", "提出方法", "url", "リンク", "送信"],
        "response": (
            "コンテンツの提出方法：\n\n"
            "**構成案の提出**：共有可能なURLを準備し、ダッシュボードの「次のステップ」で"
            "URL入力欄に貼り付けて「提出」ボタンをクリックしてください。\n\n"
            "**初稿の提出**：動画や記事の共有可能なURLを同様にダッシュボードから提出してください。\n\n"
            "**投稿の報告**：コンテンツを公開後、公開URLを提出してください。\n\n"
            "提出後は自動的にステータスが更新され、確認をお待ちいただく状態になります。"
        ),
    },
    "payment_process": {
        "keywords": ["支払い", "送金", "報酬", "請求書", "お金", "入金"],
        "response": (
            "支払いプロセスについて：\n\n"
            "1. **請求書の作成**: テンプレートを使用して請求書を作成\n"
            "2. **フォームの記入**: 支払い情報フォームに必要事項を入力\n"
            "3. **送金手続き開始**: 両方完了後、「送金手続き開始」ボタンをクリック\n\n"
            "通常3-5営業日で着金します。着金確認後、ダッシュボードの「着金を確認しました」"
            "ボタンをクリックするとキャンペーンが完了となります。\n\n"
            "ご不明な点があれば、{support_email}までお問い合わせください。"
        ),
    },
    "technical_support": {
        "keywords": ["エラー", "問題", "バグ", "動かない", "表示されない", "ログイン"],
        "response": (
            "技術的な問題が発生していますね。以下をお試しください：\n\n"
            "1. ページの再読み込み\n"
            "2. ブラウザキャッシュのクリア\n"
            "3. 別のブラウザで試す\n\n"
            "**ログインの問題**：ユーザーIDとパスワードが半角英数字で入力されているか確認してください。\n\n"
            "**データが表示されない場合**：Google Sheetsとの同期に少し時間がかかる場合があります。"
            "数分待ってから再度確認してください。"
        ),
    },
}

_ADMIN_REPLY = (
    "管理者機能について：\n\n"
    "**キャンペーン管理**：全キャンペーンの一覧表示、ステータス更新、提出コンテンツの承認・修正依頼\n\n"
    "**承認ワークフロー**：構成案と初稿の確認・承認、フィードバックによる修正指示、自動通知\n\n"
    "具体的にどの機能についてお知りになりたいですか？"
)

_INFLUENCER_REPLY = (
    "インフルエンサーとしての始め方：\n\n"
    "**1. 基本情報の入力**：ダッシュボードの「基本情報の入力」から開始してください。\n\n"
    "**2. 打ち合わせの予約**：提供されたリンクから都合の良い日時を選択してください。\n\n"
    "**3. キャンペーン進行**：各ステップで指示が表示されます。期限を確認しながら進めてください。\n\n"
    "緊急時は{support_email}までご連絡ください。"
)

_YOUTUBE_REPLY = (
    "YouTubeキャンペーンについて：\n\n"
    "**対応形式**：YouTube長編動画、YouTubeショート（60秒以下の縦型動画）\n\n"
    "**ガイドライン**：概要欄への指定テキスト追加と固定コメントの設定が必要です。\n\n"
    "**提出時の注意点**：動画は限定公開または公開状態で提出し、URLは正確にコピーしてください。"
)

DEFAULT_APOLOGY = "申し訳ございませんが、その件について詳細を確認いたします。"

_DEFAULT_REPLY = (
    DEFAULT_APOLOGY + "\n\n"
    "**よくある質問**：\n"
    "- キャンペーンのステータスと進捗について\n"
    "- コンテンツの提出方法\n"
    "- 支払いプロセス\n"
    "- 技術的なサポート\n\n"
    "より具体的なサポートが必要でしたら、{support_email}までお問い合わせください。"
)


def _support_email() -> str:
    return current_app.config.get("SUPPORT_EMAIL", "partnerships_jp@usespeak.com")


def find_faq_response(message: str) -> str | None:
    lower = message.lower()
    for faq in FAQ_RESPONSES.values():
        if any(k in lower for k in faq["keywords"]):
            return faq["response"].format(support_email=_support_email())
    return None


def canned_response(message: str, user_role: str | None = None, user_context: str = "") -> str:
    lower = message.lower()
    if any(w in lower for w in ("こんにちは", "はじめまして", "hello")):
        who = "管理者" if user_role == "admin" else "インフルエンサー"
        return (f"こんにちは！Musubimeサポートチームです。{who}としてログインされていますね。"
                "何かお手伝いできることがあれば、お気軽にお聞かせください。")

    faq = find_faq_response(message)
    if faq:
        return faq

    if user_role == "admin" and any(w in lower for w in ("管理", "承認", "レビュー")):
        return _ADMIN_REPLY
    if user_role == "influencer" and any(w in lower for w in ("始め方", "最初", "どうすれば")):
        return _INFLUENCER_REPLY.format(support_email=_support_email())
    if "youtube" in lower or "ユーチューブ" in lower:
        return _YOUTUBE_REPLY

    reply = _DEFAULT_REPLY.format(support_email=_support_email())
    if user_context:
        reply = reply.replace(DEFAULT_APOLOGY, f"{user_context.strip()}\n\n{DEFAULT_APOLOGY}", 1)
    return reply


# ── Context ──────────────────────────────────────────────────────────────────


def _campaign_context(campaign) -> dict:
    data = campaign.campaign_data
    feedback = latest_feedback(campaign.messages)
    return {
        "id": campaign.id,
        "title": campaign.id,
        "status": campaign.status.value,
        "step": campaign.step.value,
        "platform": campaign.platform,
        "contractedPrice": campaign.contracted_price,
        "schedules": {
            "meetingDate": campaign.meeting_date,
            "planSubmissionDate": campaign.plan_submission_date,
            "draftSubmissionDate": campaign.draft_submission_date,
            "liveDate": campaign.live_date,
        },
        "createdAt": campaign.created_at,
        "updatedAt": campaign.updated_at,
        "urls": {
            "plan": campaign.plan_url or None,
            "draft": campaign.draft_url or None,
            "content": campaign.content_url or None,
            "mainForm": data.get("url_main_form") or None,
            "payoutForm": data.get("url_payout_form") or None,
        },
        "submissionStatus": {
            "contractFormSubmitted": to_bool(data.get("Contract Form Submitted")),
            "planSubmitted": to_bool(data.get("Plan Submitted")),
            "draftSubmitted": to_bool(data.get("Draft Submitted")),
            "liveVideoSubmitted": to_bool(data.get("Live Video Submitted")),
            "payoutFormSubmitted": to_bool(data.get("Payout Form Submitted")),
        },
        "payout": {
            "payoutDone": to_bool(data.get("payout_done")),
            "payoutFormLink": data.get("payout_form_link") or None,
        },
        "latestFeedback": (feedback or {}).get("content", ""),
    }


def build_user_context(user_id: str | None, user_role: str | None) -> dict:
    """Campaign context for the system prompt. Sheet errors yield an empty context."""
    empty = {"summary": "", "campaigns": [], "totals": {"activeTotal": 0, "allTotal": 0},
             "platform": None, "step": None}
    if not user_id or not user_role:
        return empty
    try:
        influencer_id = None if user_role == "admin" else user_id
        campaigns = campaign_service.list_campaigns(influencer_id)
    except (SheetsNotConfiguredError, RowStoreError) as exc:
        logger.warning("Chat context unavailable: %s", exc)
        return empty

    active = [c for c in campaigns if is_active(c.status)]
    context = [_campaign_context(c) for c in active[:MAX_CONTEXT_CAMPAIGNS]]
    summary = (
        "\n現在のユーザー情報:\n"
        f"- アクティブキャンペーン: {len(active)}件\n"
        f"- 総キャンペーン: {len(campaigns)}件\n"
        f"- 最新キャンペーンステータス: {active[0].status.value if active else '該当なし'}\n"
    )
    platform = step = None
    if context:
        current = context[0]
        price = f"¥{current['contractedPrice']:,}" if current["contractedPrice"] else "未設定"
        summary += (
            f"- 現在のキャンペーン: {current['title']}\n"
            f"- ステータス/ステップ: {current['status']} / {current['step']}\n"
            f"- プラットフォーム: {current['platform']}\n"
            f"- 契約金額: {price}\n"
        )
        platform, step = current["platform"] or None, current["step"] or None

    return {
        "summary": summary,
        "campaigns": context,
        "totals": {
            "activeTotal": sum(c.contracted_price for c in active),
            "allTotal": sum(c.contracted_price for c in campaigns),
        },
        "platform": platform,
        "step": step,
    }


_indexes: dict[str, InfoIndex] = {}


def get_info_index() -> InfoIndex:
    path = current_app.config.get("KNOWLEDGE_FILE", "docs/info.txt")
    index = _indexes.get(path)
    if index is None:
        index = _indexes[path] = InfoIndex(path, get_services().llm)
    return index


def docs_context(message: str) -> str:
    hits = get_info_index().retrieve(message, k=DOCS_TOP_K)
    return "\n".join(
        f"---\n[docs {i}] ({h['meta']['source']}:{h['meta']['startLine']}-{h['meta']['endLine']})\n{h['text']}\n"
        for i, h in enumerate(hits, start=1)
    )


def build_system_prompt(user_id, user_role, user_name, context: dict, docs: str) -> str:
    head = PLATFORM_CONTEXT.replace("{user_id}", user_id or "不明").replace("{user_role}", user_role or "不明")
    return (
        f"{head}\n"
        "MASTER CONTEXT:\n"
        "- あなたは: Musubime AI Assistant\n"
        f"- 対象プラットフォーム: {context['platform'] or '不明'}\n"
        f"- 現在のステップ: {context['step'] or '不明'}\n\n"
        f"ログイン中のユーザー名: {user_name or '不明'}\n"
        f"{context['summary']}\n"
        "// ユーザーのキャンペーンコンテキスト（JSON、最大10件）:\n"
        f"{json.dumps(context['campaigns'], ensure_ascii=False)}\n\n"
        "// 報酬サマリー（JPY）:\n"
        f"{json.dumps(context['totals'])}\n\n"
        "// Docs context (抽出された該当箇所のみ):\n"
        f"{docs}\n\n"
        f"{OUTPUT_POLICY}"
    )


def _history_messages(history) -> list[dict]:
    result = []
    for m in (history or [])[-HISTORY_TURNS:]:
        if not isinstance(m, dict) or not m.get("content"):
            continue
        role = "user" if m.get("sender") == "user" else "assistant"
        result.append({"role": role, "content": str(m["content"])})
    return result


# ── Entry point ──────────────────────────────────────────────────────────────


def answer(
    message: str,
    user_id: str | None = None,
    user_role: str | None = None,
    user_name: str | None = None,
    history: list | None = None,
    source: str | None = None,
) -> dict:
    """Answer one chat message.

    Returns:
        {"response": str, "timestamp": iso, "provider": "openai" | "fallback"}

    Raises:
        LLMUnavailableError: typed message and no real LLM answered.
    """
    context = build_user_context(user_id, user_role)
    gateway = get_services().llm
    content = ""

    if gateway.has_real_provider:
        try:
            docs = docs_context(message)
        except OSError as exc:
            logger.warning("Docs retrieval failed: %s", exc)
            docs = ""
        messages = [{"role": "system", "content": build_system_prompt(user_id, user_role, user_name, context, docs)}]
        messages += _history_messages(history)
        messages.append({"role": "user", "content": message})
        try:
            result = gateway.chat(messages, purpose="chat_assistant", require_real=True,
                                  temperature=0.3, max_tokens=600)
            content = (result.get("content") or "").strip()
        except LLMUnavailableError as exc:
            logger.warning("LLM unavailable, falling back: %s", exc)

    now = datetime.now(timezone.utc).isoformat()
    if content:
        return {"response": content, "timestamp": now, "provider": "openai"}

    if source == "typed":
        raise LLMUnavailableError("LLM unavailable")
    return {
        "response": canned_response(message, user_role, context["summary"]),
        "timestamp": now,
        "provider": "fallback",
    }
