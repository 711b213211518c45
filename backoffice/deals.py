"""Deals API.

The ``deals`` table exists in two shapes: the Dutch schema (``titel``, ``waarde``,
``stadium``, ``kans``, ``bedrijf_id``, ``deadline``) and an older English one
(``title``, ``amount``, ``stage``, ``probability``, ``company_id``) without a
deadline column. Every request probes which one it is talking to and maps the
payload onto it, so the API always speaks the Dutch field names.
"""

import logging
import sqlite3

from flask import Blueprint, jsonify

from .common import read_json_body, require_id, resolve_company_id, to_iso_date, with_company_name
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, update_row
from .errors import BadRequest, NotFound, api_errors
from .schemas import DEAL_STAGES, DealCreate, DealUpdate

logger = logging.getLogger(__name__)

bp = Blueprint("deals", __name__, url_prefix="/api/deals")

DUTCH = "dutch"
ENGLISH = "english"

# dutch column -> english column
ENGLISH_COLUMNS = {
    "titel": "title",
    "waarde": "amount",
    "stadium": "stage",
    "kans": "probability",
    "bedrijf_id": "company_id",
    "notities": "notes",
}


def detect_deals_schema_variant(conn) -> str:
    try:
        conn.execute("SELECT id, titel FROM deals LIMIT 1").fetchall()
    except sqlite3.OperationalError as exc:
        if "no such column: titel" in str(exc).lower():
            return ENGLISH
        raise
    return DUTCH


def select_columns_for_variant(variant: str) -> str:
    if variant == DUTCH:
        return "id, titel, waarde, stadium, deadline, kans, bedrijf_id, notities, created_at"
    return "id, title, amount, stage, probability, company_id, notes, created_at"


def deal_company_field(variant: str) -> str:
    return "bedrijf_id" if variant == DUTCH else "company_id"


def build_deal_payload(variant: str, data: dict) -> dict:
    """Map Dutch field names onto the columns of ``variant``; keys not given are skipped."""
    if variant == DUTCH:
        return {k: v for k, v in data.items() if k in ENGLISH_COLUMNS or k == "deadline"}
    # The English schema has no deadline column.
    return {ENGLISH_COLUMNS[k]: v for k, v in data.items() if k in ENGLISH_COLUMNS}


def _first(row, *keys):
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def normalize_deal_row(row):
    company_id = _first(row, "bedrijf_id", "company_id")
    title = _first(row, "titel", "title")
    amount = _first(row, "waarde", "amount")
    stage = _first(row, "stadium", "stage")
    probability = _first(row, "kans", "probability")
    notes = _first(row, "notities", "notes")

    return {
        "id": str(row["id"]),
        "titel": str(title or ""),
        "bedrijf": row.get("companyName"),
        "bedrijfId": int(company_id) if company_id is not None else None,
        "waarde": float(amount or 0),
        "stadium": stage if stage in DEAL_STAGES else "Lead",
        "kans": int(probability or 0),
        "deadline": str(row["deadline"])[:10] if row.get("deadline") else None,
        "notities": str(notes) if notes else None,
        "createdAt": row.get("created_at"),
    }


def _load_deal(conn, variant, deal_id):
    row = fetch_one(
        conn,
        f"SELECT {select_columns_for_variant(variant)} FROM deals WHERE id = ?",
        (deal_id,),
    )
    if row is None:
        raise NotFound("Deal niet gevonden.")
    with_company_name(conn, [row], deal_company_field(variant))
    return normalize_deal_row(row)


# ================= ROUTES =================

@bp.route("", methods=["GET"])
@api_errors("Kon deals niet laden.")
def list_deals():
    conn = get_db()
    variant = detect_deals_schema_variant(conn)
    rows = fetch_all(
        conn,
        f"SELECT {select_columns_for_variant(variant)} FROM deals "
        "ORDER BY created_at DESC, id DESC LIMIT 500",
    )
    with_company_name(conn, rows, deal_company_field(variant))
    return jsonify([normalize_deal_row(row) for row in rows])


@bp.route("", methods=["POST"])
@api_errors("Kon deal niet aanmaken.")
def create_deal():
    validated = DealCreate.model_validate(read_json_body())
    conn = get_db()
    variant = detect_deals_schema_variant(conn)

    bedrijf_id = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)
    payload = build_deal_payload(variant, {
        "titel": validated.titel,
        "waarde": validated.waarde,
        "stadium": validated.stadium,
        "kans": validated.kans,
        "deadline": to_iso_date(validated.deadline),
        "bedrijf_id": bedrijf_id,
    })

    with conn:
        deal_id = insert_row(conn, "deals", payload)

    logger.info("Created deal %s (%s schema)", deal_id, variant)
    return jsonify(_load_deal(conn, variant, deal_id)), 201


@bp.route("/<raw_id>", methods=["PATCH", "PUT"])
@api_errors("Kon deal niet bijwerken.")
def update_deal(raw_id):
    deal_id = require_id(raw_id, "deal")
    validated = DealUpdate.model_validate(read_json_body())
    changes = validated.changes()
    conn = get_db()
    variant = detect_deals_schema_variant(conn)

    data = {
        key: changes[key]
        for key in ("titel", "waarde", "stadium", "kans")
        if changes.get(key) is not None
    }
    if "deadline" in changes:
        data["deadline"] = to_iso_date(changes["deadline"])
    if "bedrijf" in changes or "bedrijf_id" in changes:
        data["bedrijf_id"] = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)

    payload = build_deal_payload(variant, data)
    if not payload:
        raise BadRequest("Geen wijzigingen opgegeven.")

    with conn:
        if not update_row(conn, "deals", deal_id, payload):
            raise NotFound("Deal niet gevonden.")

    return jsonify(_load_deal(conn, variant, deal_id))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon deal niet verwijderen.")
def delete_deal(raw_id):
    deal_id = require_id(raw_id, "deal")
    conn = get_db()
    with conn:
        delete_row(conn, "deals", deal_id)
    return jsonify({"success": True})
