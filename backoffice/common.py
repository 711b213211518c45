import json
import math
from datetime import date, datetime, timezone

from flask import request

from .db import fetch_all, fetch_one, insert_row
from .errors import BadRequest


def parse_numeric_id(raw_id):
    try:
        value = float(str(raw_id).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0 or not value.is_integer():
        return None
    return int(value)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_date(value):
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def to_iso_date(value):
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def to_iso_date_or(value, fallback: date) -> str:
    return to_iso_date(value) or fallback.isoformat()


def date_part(value):
    return str(value)[:10] if value else None


def parse_json_field(value):
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None


def read_json_body() -> dict:
    raw = request.get_data(cache=True)
    if not raw.strip():
        return {}
    body = request.get_json(force=True, silent=True)
    if body is None:
        raise BadRequest("Ongeldige JSON payload.")
    return body if isinstance(body, dict) else {}


def require_id(raw_id, label: str) -> int:
    parsed = parse_numeric_id(raw_id)
    if parsed is None:
        raise BadRequest(f"Ongeldig {label}-ID.")
    return parsed


# ================= COMPANIES =================

def resolve_company_id(conn, company_name=None, requested_company_id=None, create_if_missing=True):
    if requested_company_id is not None:
        return requested_company_id
    if not company_name or not company_name.strip():
        return None

    name = company_name.strip()
    existing = fetch_one(
        conn,
        "SELECT id FROM bedrijven WHERE lower(naam) = lower(?) ORDER BY id ASC LIMIT 1",
        (name,),
    )
    if existing is not None:
        return int(existing["id"])

    if not create_if_missing:
        return None

    # no commit here: the new company belongs to the caller's transaction
    return insert_row(conn, "bedrijven", {"naam": name})


def map_company_names_by_id(conn, company_ids) -> dict:
    ids = sorted({int(i) for i in company_ids if isinstance(i, int) and not isinstance(i, bool)})
    if not ids:
        return {}

    placeholders = ", ".join("?" for _ in ids)
    rows = fetch_all(conn, f"SELECT id, naam FROM bedrijven WHERE id IN ({placeholders})", ids)
    return {int(row["id"]): str(row["naam"]) for row in rows}


def with_company_name(conn, rows, field="bedrijf_id"):
    names = map_company_names_by_id(conn, [row.get(field) for row in rows])
    for row in rows:
        company_id = row.get(field)
        row["companyName"] = names.get(company_id) if company_id is not None else None
    return rows


def normalize_participants(value) -> list:
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return []
