from __future__ import annotations

import json
import logging
from pathlib import Path

import openpyxl

from impactdash.flatfile import ChallengeValidationError, append_records, build_challenge
from impactdash.schemas import PROJECT_PHASES

log = logging.getLogger(__name__)


def _s(value: object) -> str:
    """Safely coerce cell value to stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def _f(value: object) -> float | None:
    """Safely coerce cell value to float, None if missing."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _json_object(value: object) -> dict | None:
    """Parse a cell holding a JSON object, None if it holds anything else."""
    try:
        parsed = json.loads(_s(value))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# Header mapping
# ---------------------------------------------------------------------------

# Normalized header -> request field (see flatfile.CHALLENGE_FIELDS)
_REQUIRED_HEADERS = {
    "virgin company": "virgin_company",
    "company": "virgin_company",
    "initiative": "initiative",
    "initiaitive": "initiative",
    "challenge": "challenge",
    "what virgin is doing": "what_virgin_is_doing",
    "solution": "what_virgin_is_doing",
    "call to action": "call_to_action",
    "links": "links",
    "reward": "reward",
}

# Normalized header -> record key
_OPTIONAL_HEADERS = {
    "theme": "theme",
    "region": "region",
    "phase": "phase",
    "impact score": "impactScore",
    "impactscore": "impactScore",
    "last updated": "lastUpdated",
    "lastupdated": "lastUpdated",
    "metrics": "metrics",
}


def _normalize_header(value: object) -> str:
    return " ".join(_s(value).casefold().replace("_", " ").split())


def _header_map(header_row: tuple) -> dict[int, tuple[str, str]]:
    """Column index -> ("required" | "optional", field name)."""
    mapping: dict[int, tuple[str, str]] = {}
    for idx, cell in enumerate(header_row):
        key = _normalize_header(cell)
        if key in _REQUIRED_HEADERS:
            mapping[idx] = ("required", _REQUIRED_HEADERS[key])
        elif key in _OPTIONAL_HEADERS:
            mapping[idx] = ("optional", _OPTIONAL_HEADERS[key])
    return mapping


def _parse_row(row: tuple, mapping: dict[int, tuple[str, str]]) -> tuple[dict, dict]:
    fields: dict[str, str] = {}
    extras: dict[str, object] = {}
    for idx, (kind, name) in mapping.items():
        value = row[idx] if idx < len(row) else None
        if kind == "required":
            fields[name] = _s(value)
        elif name == "impactScore":
            score = _f(value)
            if score is not None:
                extras[name] = score
        elif name == "metrics":
            parsed = _json_object(value)
            if parsed is not None:
                extras[name] = parsed
        elif name == "phase":
            phase = _s(value).capitalize()
            if phase in PROJECT_PHASES:
                extras[name] = phase
        elif _s(value):
            extras[name] = _s(value)
    return fields, extras


def import_xlsx(file_path: str | Path, challenges_path: Path) -> dict:
    """Append every complete row of the first sheet to the challenges file.

    The first row is the header; columns are matched by name.  Rows missing a
    required field are skipped and reported.
    """
    file_path = Path(file_path)
    wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        rows = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()

    if not rows:
        return {"imported": 0, "skipped": 0, "uids": []}

    mapping = _header_map(rows[0])
    records: list[dict] = []
    skipped = 0
    for line_no, row in enumerate(rows[1:], start=2):
        if not row or not any(_s(c) for c in row):
            continue
        fields, extras = _parse_row(row, mapping)
        try:
            record = build_challenge(fields)
        except ChallengeValidationError as exc:
            log.warning("Skipping row %d: missing %s", line_no, ", ".join(exc.missing))
            skipped += 1
            continue
        record.update(extras)
        records.append(record)

    added = append_records(challenges_path, records) if records else []
    return {"imported": len(added), "skipped": skipped, "uids": [r["uid"] for r in added]}
