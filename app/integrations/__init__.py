"""app.integrations — External service gateway modules.

All outbound calls to third-party APIs go through a gateway in this
package, never via bare `requests` or Google client calls in services or
blueprints.

Current gateways:
  sheets_gateway.SheetsGateway   — Google Sheets values API (the only store)
  webhook_gateway.WebhookGateway — Zapier webhooks (revision, reminder, contract)
"""
