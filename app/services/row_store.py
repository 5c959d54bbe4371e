"""
Row Store — the spreadsheet as a table of named-column rows.

Every persistent read and write in the app goes through this module:

    fetch_columns()          read selected columns (TTL-cached)
    write_cells()            update cells of one row in a single batch
    append_json_log_entry()  append to a JSON-array cell, plus extra cells
    validate_headers()       compare the live header row to the schema

Consistency model: none beyond a single batchUpdate. Rows are located
by a linear scan of the id column, there is no locking, and the last
write wins. Every successful write evicts cached ranges of that sheet.

Usage:
    store = RowStore(gateway, SheetCache(ttl=30))
    rows = store.fetch_columns(["id_campaign", "status_dashboard"], filter_influencer_id="inf-1")
    store.write_cells("campaigns", ("id_campaign", "C-1"), {"status_dashboard": "scheduling"},
                      match={"id_influencer": "inf-1"})
"""

from __future__ import annotations

import json
import logging

from app.core.exceptions import NotFoundError, RowStoreError, WritePermissionError
from app.integrations.sheets_gateway import SheetsGateway
from app.services.cache_service import SheetCache
from app.services.sheet_schema import (
    CAMPAIGNS_SHEET,
    HeaderReport,
    SheetSpec,
    build_sheet_specs,
    column_index,
    column_letter,
    start_column_of,
)

logger = logging.getLogger(__name__)


def parse_json_array(raw) -> list:
    """Parse a JSON-array cell. Anything unparseable or non-array reads as []."""
    if isinstance(raw, list):
        return raw
    if not raw or not str(raw).strip():
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def _quote_sheet(name: str) -> str:
    if name.replace("_", "").isalnum():
        return name
    return "'" + name.replace("'", "''") + "'"


def _cell(row: list, idx: int) -> str:
    return row[idx] if 0 <= idx < len(row) else ""


class RowStore:
    """Named-column access to the workflow spreadsheet."""

    def __init__(
        self,
        gateway: SheetsGateway,
        cache: SheetCache | None = None,
        sheets: dict[str, SheetSpec] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache or SheetCache()
        self.sheets = sheets or build_sheet_specs()

    # ── Introspection ────────────────────────────────────────────────────

    @property
    def configured(self) -> bool:
        return self.gateway.configured

    @property
    def can_write(self) -> bool:
        return self.gateway.can_write

    def spec(self, sheet: str) -> SheetSpec:
        try:
            return self.sheets[sheet]
        except KeyError:
            raise RowStoreError(f"Unknown sheet '{sheet}'") from None

    # ── Reads ────────────────────────────────────────────────────────────

    def _read_range(self, spec: SheetSpec, force_refresh: bool = False) -> list[list[str]]:
        key = self.cache.key(self.gateway.spreadsheet_id, spec.range)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        values = self.gateway.get_values(spec.range)
        self.cache.set(key, values)
        return values

    def fetch_columns(
        self,
        column_names: list[str] | None = None,
        filter_influencer_id: str | None = None,
        sheet: str = CAMPAIGNS_SHEET,
        force_refresh: bool = False,
    ) -> list[dict]:
        """Return data rows as dicts restricted to *column_names*.

        ``column_names=None`` returns every header column. Columns absent
        from the header yield "". When *filter_influencer_id* is given and
        the sheet has an ``id_influencer`` column, only matching rows are
        returned.
        """
        spec = self.spec(sheet)
        values = self._read_range(spec, force_refresh=force_refresh)
        if not values:
            return []

        header = [h.strip() for h in values[0]]
        positions = {name: i for i, name in enumerate(header) if name}
        wanted = list(column_names) if column_names is not None else [h for h in header if h]

        infl_idx = positions.get("id_influencer")
        target = str(filter_influencer_id).strip() if filter_influencer_id is not None else None

        rows = []
        for raw in values[spec.data_start:]:
            if target is not None and infl_idx is not None:
                if _cell(raw, infl_idx).strip() != target:
                    continue
            rows.append({name: _cell(raw, positions.get(name, -1)) for name in wanted})
        return rows

    def read_cell(
        self,
        sheet: str,
        row_key: tuple[str, str],
        column: str,
        match: dict | None = None,
        force_refresh: bool = True,
    ) -> str:
        """Return one cell of the located row ("" when the column is absent)."""
        spec = self.spec(sheet)
        values = self._read_range(spec, force_refresh=force_refresh)
        header, row_idx = self._locate(spec, values, row_key, match)
        try:
            col_idx = header.index(column)
        except ValueError:
            return ""
        return _cell(values[row_idx], col_idx)

    # ── Writes ───────────────────────────────────────────────────────────

    def require_write(self) -> None:
        if not self.gateway.can_write:
            logger.warning("Write refused: credentials are read-only (mode=%s)",
                           self.gateway.credential_mode)
            raise WritePermissionError()

    def _locate(
        self,
        spec: SheetSpec,
        values: list[list[str]],
        row_key: tuple[str, str],
        match: dict | None,
        last: bool = False,
    ) -> tuple[list[str], int]:
        """Return (header, index into values) of the first (or last) matching data row."""
        id_column, id_value = row_key
        if not values:
            raise NotFoundError(resource=f"{spec.name} row", resource_id=str(id_value))
        header = [h.strip() for h in values[0]]
        if id_column not in header:
            raise RowStoreError(f"Column '{id_column}' not found in sheet '{spec.name}'")

        checks = [(header.index(id_column), str(id_value).strip())]
        for col, val in (match or {}).items():
            if col not in header:
                raise RowStoreError(f"Column '{col}' not found in sheet '{spec.name}'")
            checks.append((header.index(col), str(val).strip()))

        indices = range(spec.data_start, len(values))
        for idx in (reversed(indices) if last else indices):
            row = values[idx]
            if all(_cell(row, c).strip() == v for c, v in checks):
                return header, idx

        label = str(id_value)
        if match:
            label += " (" + ", ".join(f"{k}={v}" for k, v in match.items()) + ")"
        raise NotFoundError(resource=f"{spec.name} row", resource_id=label)

    def _build_updates(self, spec: SheetSpec, header: list[str], row_idx: int, writes: dict) -> list[dict]:
        offset = column_index(start_column_of(spec.range))
        sheet_row = row_idx + 1  # values[0] is sheet row 1
        data = []
        for column, value in writes.items():
            if column not in header:
                raise RowStoreError(f"Column '{column}' not found in sheet '{spec.name}'")
            letter = column_letter(offset + header.index(column))
            data.append({
                "range": f"{_quote_sheet(spec.name)}!{letter}{sheet_row}",
                "values": [["" if value is None else value]],
            })
        return data

    def write_cells(
        self,
        sheet: str,
        row_key: tuple[str, str],
        writes: dict,
        match: dict | None = None,
        last: bool = False,
    ) -> dict:
        """Update several cells of one row in a single batchUpdate.

        Args:
            sheet: Sheet key ("campaigns", "selected", ...).
            row_key: (id column, id value) used to locate the row.
            writes: {column name: new value}.
            match: Extra {column: value} pairs the row must also match.
            last: Pick the lowest matching row instead of the first.

        Returns:
            {"row": sheet row number, "columns": [written columns]}

        Raises:
            WritePermissionError: Read-only credentials. Nothing is sent.
            NotFoundError: No row matches.
            RowStoreError: Id/target column missing, or the API failed.
        """
        self.require_write()
        if not writes:
            return {"row": None, "columns": []}
        spec = self.spec(sheet)
        values = self._read_range(spec, force_refresh=True)
        header, row_idx = self._locate(spec, values, row_key, match, last=last)
        data = self._build_updates(spec, header, row_idx, writes)
        self.gateway.batch_update(data)
        self.cache.invalidate_matching(spec.name)
        logger.info(
            "Row updated sheet=%s row=%d columns=%s",
            spec.name, row_idx + 1, ",".join(writes),
            extra={"sheet": spec.name, "campaign_id": row_key[1]},
        )
        return {"row": row_idx + 1, "columns": list(writes)}

    def append_json_log_entry(
        self,
        sheet: str,
        row_key: tuple[str, str],
        column: str,
        entry: dict,
        extra_writes: dict | None = None,
        match: dict | None = None,
    ) -> list:
        """Append *entry* to the JSON array stored in *column*.

        The array and any *extra_writes* go out in the same batch.
        Unparseable or non-array content is treated as an empty array.

        Returns:
            The full array as written.
        """
        self.require_write()
        spec = self.spec(sheet)
        values = self._read_range(spec, force_refresh=True)
        header, row_idx = self._locate(spec, values, row_key, match)
        current = _cell(values[row_idx], header.index(column)) if column in header else ""
        log = parse_json_array(current)
        log.append(entry)

        writes = {column: json.dumps(log, ensure_ascii=False)}
        writes.update(extra_writes or {})
        data = self._build_updates(spec, header, row_idx, writes)
        self.gateway.batch_update(data)
        self.cache.invalidate_matching(spec.name)
        logger.info(
            "Log entry appended sheet=%s column=%s type=%s size=%d",
            spec.name, column, entry.get("type") or entry.get("event_type"), len(log),
            extra={"sheet": spec.name, "campaign_id": row_key[1]},
        )
        return log

    def append_json_log_entries(
        self,
        sheet: str,
        row_key: tuple[str, str],
        entries: dict[str, dict],
        extra_writes: dict | None = None,
        match: dict | None = None,
    ) -> dict[str, list]:
        """Append one entry to each of several JSON-array columns in one batch.

        Args:
            entries: {column: entry}
        """
        self.require_write()
        spec = self.spec(sheet)
        values = self._read_range(spec, force_refresh=True)
        header, row_idx = self._locate(spec, values, row_key, match)
        writes = {}
        arrays = {}
        for column, entry in entries.items():
            current = _cell(values[row_idx], header.index(column)) if column in header else ""
            log = parse_json_array(current)
            log.append(entry)
            arrays[column] = log
            writes[column] = json.dumps(log, ensure_ascii=False)
        writes.update(extra_writes or {})
        data = self._build_updates(spec, header, row_idx, writes)
        self.gateway.batch_update(data)
        self.cache.invalidate_matching(spec.name)
        return arrays

    def replace_rows(self, sheet: str, rows: list[dict]) -> int:
        """Rewrite every data row of *sheet* from *rows* (dicts keyed by column).

        The header row is (re)written from the declared columns. Rows left
        over from a longer previous version are blanked.

        Returns:
            Number of data rows written.
        """
        self.require_write()
        spec = self.spec(sheet)
        columns = list(spec.columns)
        previous = self._read_range(spec, force_refresh=True)

        grid = [columns]
        grid.extend([["" if row.get(c) is None else str(row.get(c)) for c in columns] for row in rows])
        while len(grid) < len(previous):
            grid.append([""] * len(columns))

        start = start_column_of(spec.range)
        end = column_letter(column_index(start) + len(columns) - 1)
        a1 = f"{_quote_sheet(spec.name)}!{start}1:{end}{len(grid)}"
        self.gateway.batch_update([{"range": a1, "values": grid}])
        self.cache.invalidate_matching(spec.name)
        logger.info("Sheet rewritten sheet=%s rows=%d", spec.name, len(rows), extra={"sheet": spec.name})
        return len(rows)

    # ── Schema ───────────────────────────────────────────────────────────

    def validate_headers(self, sheet: str = CAMPAIGNS_SHEET) -> HeaderReport:
        """Compare the live header row with the declared columns."""
        spec = self.spec(sheet)
        values = self._read_range(spec)
        header = {h.strip() for h in values[0]} if values else set()
        report = HeaderReport(
            sheet=spec.name,
            missing_required=[c for c in spec.required_columns if c not in header],
            missing_optional=[c for c in spec.optional_columns if c not in header],
        )
        if report.missing_required:
            logger.warning("Sheet '%s' is missing required columns: %s",
                           spec.name, ", ".join(report.missing_required))
        elif report.missing_optional:
            logger.info("Sheet '%s' is missing %d optional column(s)",
                        spec.name, len(report.missing_optional))
        return report
