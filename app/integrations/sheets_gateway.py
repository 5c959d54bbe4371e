"""
Google Sheets Gateway.

All calls to the Google Sheets v4 REST API go through this class.
Services never import googleapiclient directly.

Credential modes:
  - Service account (GOOGLE_SERVICE_ACCOUNT_EMAIL + GOOGLE_PRIVATE_KEY):
    read + write.
  - API key (GOOGLE_SHEETS_API_KEY): read-only. Writes are refused
    before any network call.
  - Neither: every call raises SheetsNotConfiguredError.

Errors: googleapiclient HttpError (and transport errors) are converted
to RowStoreError with the upstream message kept verbatim.

Testability: pass a fake `service` to SheetsGateway() in tests. It only
needs `spreadsheets().values().get(...)` and `.batchUpdate(...)` with
`.execute()`, mirroring the discovery client.
"""

from __future__ import annotations

import logging
import time

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from google.oauth2 import service_account

from app.core.exceptions import RowStoreError, SheetsNotConfiguredError, WritePermissionError

logger = logging.getLogger(__name__)

# ── API constants ──────────────────────────────────────────────────────────
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
_TOKEN_URI = "https://oauth2.googleapis.com/token"
_VALUE_INPUT_OPTION = "USER_ENTERED"


def normalize_private_key(raw: str) -> str:
    """Env files usually carry the PEM with literal ``\\n`` sequences."""
    return (raw or "").replace("\\n", "\n").strip().strip('"')


class SheetsGateway:
    """Thin wrapper over the Sheets `spreadsheets.values` resource.

    Usage:
        gw = SheetsGateway.from_config(app.config)
        rows = gw.get_values("campaigns!A:BT")
        gw.batch_update([{"range": "campaigns!F7", "values": [["scheduling"]]}])
    """

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        service_account_email: str = "",
        private_key: str = "",
        api_key: str = "",
        service=None,
        write_capable: bool | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._service_account_email = service_account_email
        self._private_key = normalize_private_key(private_key)
        self._api_key = api_key
        self._service = service
        # Injected services declare their own capability; otherwise derive it
        self._write_capable = write_capable

    @classmethod
    def from_config(cls, config, service=None, write_capable: bool | None = None) -> "SheetsGateway":
        return cls(
            config.get("GOOGLE_SHEETS_SPREADSHEET_ID", ""),
            service_account_email=config.get("GOOGLE_SERVICE_ACCOUNT_EMAIL", ""),
            private_key=config.get("GOOGLE_PRIVATE_KEY", ""),
            api_key=config.get("GOOGLE_SHEETS_API_KEY", ""),
            service=service,
            write_capable=write_capable,
        )

    # ── Capability checks ────────────────────────────────────────────────────

    @property
    def has_service_account(self) -> bool:
        return bool(self._service_account_email and self._private_key)

    @property
    def configured(self) -> bool:
        if not self.spreadsheet_id:
            return False
        return self._service is not None or self.has_service_account or bool(self._api_key)

    @property
    def can_write(self) -> bool:
        if self._write_capable is not None:
            return self.configured and self._write_capable
        return bool(self.spreadsheet_id) and self.has_service_account

    @property
    def credential_mode(self) -> str:
        if not self.configured:
            return "none"
        if self.can_write:
            return "service_account"
        return "api_key"

    # ── Discovery client ─────────────────────────────────────────────────────

    @property
    def service(self):
        """Return (or lazily build) the discovery client."""
        if self._service is None:
            if not self.configured:
                raise SheetsNotConfiguredError()
            if self.has_service_account:
                creds = service_account.Credentials.from_service_account_info(
                    {
                        "type": "service_account",
                        "client_email": self._service_account_email,
                        "private_key": self._private_key,
                        "token_uri": _TOKEN_URI,
                    },
                    scopes=SCOPES,
                )
                self._service = build("sheets", "v4", credentials=creds, cache_discovery=False)
                logger.info("Sheets client built with service account %s", self._service_account_email)
            else:
                self._service = build("sheets", "v4", developerKey=self._api_key, cache_discovery=False)
                logger.info("Sheets client built with API key (read-only)")
        return self._service

    # ── Calls ────────────────────────────────────────────────────────────────

    def get_values(self, a1_range: str) -> list[list[str]]:
        """Read a range. Returns a list of (possibly ragged) string rows.

        Raises:
            SheetsNotConfiguredError: No credentials / spreadsheet id.
            RowStoreError: The API call failed.
        """
        if not self.configured:
            raise SheetsNotConfiguredError()
        start = time.time()
        try:
            result = (
                self.service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=a1_range)
                .execute()
            )
        except HttpError as exc:
            raise _to_row_store_error(exc) from exc
        except (OSError, ValueError) as exc:
            raise RowStoreError(f"Sheets read failed: {exc}") from exc
        rows = result.get("values", []) or []
        logger.debug("Sheets read %s rows=%d duration_ms=%d",
                     a1_range, len(rows), int((time.time() - start) * 1000))
        return [[("" if cell is None else str(cell)) for cell in row] for row in rows]

    def batch_update(self, data: list[dict]) -> dict:
        """Write several ranges in one request.

        Args:
            data: [{"range": "sheet!B7", "values": [["value"]]}, ...]

        Raises:
            WritePermissionError: Credentials are read-only. No request is made.
            RowStoreError: The API call failed.
        """
        if not self.configured:
            raise SheetsNotConfiguredError()
        if not self.can_write:
            raise WritePermissionError()
        body = {"valueInputOption": _VALUE_INPUT_OPTION, "data": data}
        try:
            result = (
                self.service.spreadsheets()
                .values()
                .batchUpdate(spreadsheetId=self.spreadsheet_id, body=body)
                .execute()
            )
        except HttpError as exc:
            raise _to_row_store_error(exc) from exc
        except (OSError, ValueError) as exc:
            raise RowStoreError(f"Sheets write failed: {exc}") from exc
        logger.info("Sheets batchUpdate ranges=%d cells=%s",
                    len(data), (result or {}).get("totalUpdatedCells"))
        return result or {}


def _to_row_store_error(exc: HttpError) -> RowStoreError:
    status = getattr(getattr(exc, "resp", None), "status", None)
    reason = getattr(exc, "reason", None) or str(exc)
    logger.error("Sheets API error status=%s: %s", status, reason)
    return RowStoreError(reason, status_code=int(status) if status else None)
