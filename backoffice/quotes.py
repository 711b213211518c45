"""Quotes (offertes) with optional photos, dimensions and an AI analysis.

The AI columns are added by ``flask migrate-offertes``. Databases without them
still serve plain quotes; anything that needs them is refused with a 409.
"""

import logging
import math
import re
import sqlite3
import time
import uuid
from collections import namedtuple
from datetime import date, timedelta

from flask import Blueprint, current_app, jsonify, request

from .common import (
    date_part,
    now_iso,
    parse_json_field,
    read_json_body,
    require_id,
    resolve_company_id,
    to_iso_date_or,
)
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, to_json, update_row
from .errors import BadRequest, Conflict, NotFound, api_errors
from .media import get_storage
from .quote_ai import AI_STATUSES, NOT_ANALYZED, normalize_stored_analysis, run_quote_analysis
from .schemas import DIMENSION_UNITS, QUOTE_STATUSES, AnalyzeRequest, QuoteCreate, QuoteUpdate

logger = logging.getLogger(__name__)

bp = Blueprint("quotes", __name__, url_prefix="/api/offertes")

BASE_COLUMNS = "id, nummer, klant, bedrag, datum, geldig_tot, status, bedrijf_id, created_at"
AI_COLUMNS = (
    BASE_COLUMNS
    + ", ai_fotos, ai_afmetingen, ai_analyse, ai_analyse_status, ai_analyse_fout, ai_analyse_at"
)

AI_COLUMNS_MISSING = "AI velden ontbreken in de database. Voer eerst `flask migrate-offertes` uit."

MAX_PHOTOS = 50
MAX_PHOTO_BYTES = 5 * 1024 * 1024
IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}
VALID_DAYS = 14

Upload = namedtuple("Upload", "name mime_type data room_id")


def supports_ai_columns(conn) -> bool:
    try:
        conn.execute("SELECT id, ai_fotos FROM offertes LIMIT 1").fetchall()
    except sqlite3.OperationalError as exc:
        if "no such column" in str(exc):
            return False
        raise
    return True


def generate_quote_number(today=None) -> str:
    year = (today or date.today()).year
    return f"OFF-{year}-{str(int(time.time() * 1000))[-6:]}"


# ================= NORMALIZE =================

def _positive_number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) and number > 0 else None


def normalize_dimensions(value):
    parsed = parse_json_field(value)
    if not isinstance(parsed, dict):
        return None

    unit = parsed.get("eenheid") if parsed.get("eenheid") in DIMENSION_UNITS else "cm"
    rooms = parsed.get("rooms")
    if isinstance(rooms, list):
        normalized = []
        for room in rooms:
            if not isinstance(room, dict):
                continue
            entry = {
                "id": str(room.get("id") or uuid.uuid4()),
                "name": str(room.get("name") or "Naamloze ruimte"),
                "length": _positive_number(room.get("length")),
                "width": _positive_number(room.get("width")),
                "height": _positive_number(room.get("height")),
                "area": _positive_number(room.get("area")),
                "volume": _positive_number(room.get("volume")),
            }
            if room.get("description"):
                entry["description"] = str(room["description"])
            if isinstance(room.get("unit"), str) and room["unit"]:
                entry["unit"] = room["unit"]
            normalized.append(entry)
        return {"rooms": normalized, "eenheid": unit}

    lengte = _positive_number(parsed.get("lengte"))
    breedte = _positive_number(parsed.get("breedte"))
    hoogte = _positive_number(parsed.get("hoogte"))
    if lengte is None and breedte is None and hoogte is None:
        return None
    return {"lengte": lengte, "breedte": breedte, "hoogte": hoogte, "eenheid": unit}


def normalize_photos(value):
    parsed = parse_json_field(value)
    if not isinstance(parsed, list):
        return []

    photos = []
    for entry in parsed:
        if not isinstance(entry, dict):
            continue
        path = entry.get("path") if isinstance(entry.get("path"), str) else ""
        url = entry.get("url") if isinstance(entry.get("url"), str) else ""
        if not path or not url:
            continue
        size = entry.get("size")
        photo = {
            "path": path,
            "url": url,
            "name": entry.get("name") if isinstance(entry.get("name"), str) else "foto",
            "size": size if isinstance(size, (int, float)) and not isinstance(size, bool) else 0,
            "mimeType": entry.get("mimeType") if isinstance(entry.get("mimeType"), str) else "application/octet-stream",
            "uploadedAt": entry.get("uploadedAt") if isinstance(entry.get("uploadedAt"), str) else now_iso(),
        }
        if isinstance(entry.get("roomId"), str) and entry["roomId"]:
            photo["roomId"] = entry["roomId"]
        photos.append(photo)
    return photos


def normalize_quote_row(row):
    status = row.get("status")
    ai_status = row.get("ai_analyse_status")
    return {
        "id": str(row["id"]),
        "nummer": str(row.get("nummer") or ""),
        "klant": str(row.get("klant") or ""),
        "bedrag": float(row.get("bedrag") or 0),
        "datum": date_part(row.get("datum")),
        "geldigTot": date_part(row.get("geldig_tot")),
        "status": status if status in QUOTE_STATUSES else "Openstaand",
        "bedrijfId": int(row["bedrijf_id"]) if row.get("bedrijf_id") is not None else None,
        "createdAt": row.get("created_at") or None,
        "fotos": normalize_photos(row.get("ai_fotos")) if row.get("ai_fotos") else [],
        "afmetingen": normalize_dimensions(row.get("ai_afmetingen")) if row.get("ai_afmetingen") else None,
        "aiAnalyse": normalize_stored_analysis(row.get("ai_analyse")) if row.get("ai_analyse") else None,
        "aiAnalyseStatus": ai_status if ai_status in AI_STATUSES else NOT_ANALYZED,
        "aiAnalyseFout": str(row["ai_analyse_fout"]) if row.get("ai_analyse_fout") else None,
        "aiAnalyseAt": str(row["ai_analyse_at"]) if row.get("ai_analyse_at") else None,
    }


def _load_quote_row(conn, quote_id, with_ai):
    columns = AI_COLUMNS if with_ai else BASE_COLUMNS
    row = fetch_one(conn, f"SELECT {columns} FROM offertes WHERE id = ?", (quote_id,))
    if row is None:
        raise NotFound("Offerte niet gevonden.")
    return row


# ================= REQUEST PARSING =================

def _form_value(name):
    value = request.form.get(name)
    if value is None:
        return None
    return value.strip() or None


def _first_form_value(*names):
    for name in names:
        value = _form_value(name)
        if value is not None:
            return value
    return None


def _form_dimensions():
    raw = _form_value("afmetingen")
    if raw:
        parsed = parse_json_field(raw)
        if parsed is None:
            raise BadRequest("Afmetingen JSON is ongeldig.")
        return parsed
    return {
        "lengte": _form_value("lengte"),
        "breedte": _form_value("breedte"),
        "hoogte": _form_value("hoogte"),
        "eenheid": _form_value("eenheid"),
    }


def _read_upload(storage, room_id=None):
    data = storage.read()
    if not data:
        return None
    return Upload(storage.filename or "foto", storage.mimetype or "", data, room_id)


def parse_create_request():
    """Return ``(payload, uploads)`` from a JSON or multipart request."""
    if request.mimetype != "multipart/form-data":
        return read_json_body(), []

    uploads = []
    for storage in request.files.getlist("fotos") + request.files.getlist("foto"):
        upload = _read_upload(storage)
        if upload:
            uploads.append(upload)
    for key, storage in request.files.items(multi=True):
        match = re.match(r"^room_photos_(.+)$", key)
        if match:
            upload = _read_upload(storage, match.group(1))
            if upload:
                uploads.append(upload)

    payload = {
        "nummer": _form_value("nummer"),
        "klant": _first_form_value("klant", "bedrijf"),
        "bedrag": _form_value("bedrag"),
        "datum": _form_value("datum"),
        "geldigTot": _first_form_value("geldigTot", "geldig_tot", "validtot"),
        "status": _form_value("status"),
        "bedrijfId": _first_form_value("bedrijfId", "bedrijf_id"),
        "afmetingen": _form_dimensions(),
        "aiProvider": _first_form_value("aiProvider", "ai_provider"),
    }
    return {key: value for key, value in payload.items() if value is not None}, uploads


# ================= PHOTOS =================

def clean_file_name(file_name: str) -> str:
    stem = re.sub(r"\.[a-z0-9]{1,8}$", "", file_name, flags=re.IGNORECASE)
    base = re.sub(r"-+", "-", re.sub(r"[^a-z0-9._-]+", "-", stem.lower()))
    trimmed = re.sub(r"^[-.]+|[-.]+$", "", base)[:80]
    return trimmed or "offerte-foto"


def file_extension(upload: Upload) -> str:
    if upload.mime_type in IMAGE_EXTENSIONS:
        return IMAGE_EXTENSIONS[upload.mime_type]
    suffix = upload.name.rsplit(".", 1)[-1].lower() if "." in upload.name else ""
    return suffix if re.fullmatch(r"[a-z0-9]+", suffix) else "bin"


def store_quote_photos(storage, quote_id, uploads):
    if not uploads:
        return []
    if len(uploads) > MAX_PHOTOS:
        raise BadRequest(f"Maximaal {MAX_PHOTOS} foto's in totaal toegestaan.")

    stored = []
    try:
        for index, upload in enumerate(uploads, start=1):
            if upload.mime_type not in IMAGE_EXTENSIONS:
                raise BadRequest(f"Bestandstype niet ondersteund: {upload.mime_type or upload.name}")
            if len(upload.data) > MAX_PHOTO_BYTES:
                raise BadRequest(f"Bestand {upload.name} is groter dan 5 MB.")

            object_path = (
                f"{quote_id}/{int(time.time() * 1000)}-{index}-{uuid.uuid4()}-"
                f"{clean_file_name(upload.name)}.{file_extension(upload)}"
            )
            storage.save(object_path, upload.data)

            photo = {
                "path": object_path,
                "url": storage.public_url(object_path),
                "name": upload.name,
                "size": len(upload.data),
                "mimeType": upload.mime_type,
                "uploadedAt": now_iso(),
            }
            if upload.room_id:
                photo["roomId"] = upload.room_id
            stored.append(photo)
    except Exception:
        storage.remove([photo["path"] for photo in stored])
        raise
    return stored


def photo_paths(row):
    return [photo["path"] for photo in normalize_photos(row.get("ai_fotos"))]


def _analyze(quote, provider=None):
    storage = get_storage()
    return run_quote_analysis(quote, current_app.config, storage.read, provider=provider)


def _analysis_columns(result):
    analysis = result["analysis"]
    return {
        "ai_analyse": to_json(analysis) if analysis is not None else None,
        "ai_analyse_status": result["status"],
        "ai_analyse_fout": result["error"],
        "ai_analyse_at": analysis.get("generatedAt") if analysis else None,
    }


# ================= ROUTES =================

@bp.route("", methods=["GET"])
@api_errors("Kon offertes niet laden.")
def list_quotes():
    conn = get_db()
    columns = AI_COLUMNS if supports_ai_columns(conn) else BASE_COLUMNS
    rows = fetch_all(conn, f"SELECT {columns} FROM offertes ORDER BY created_at DESC, id DESC LIMIT 300")
    return jsonify([normalize_quote_row(row) for row in rows])


@bp.route("", methods=["POST"])
@api_errors("Kon offerte niet aanmaken.")
def create_quote():
    conn = get_db()
    with_ai = supports_ai_columns(conn)
    payload, uploads = parse_create_request()
    validated = QuoteCreate.model_validate(payload)
    dimensions = validated.afmetingen.as_payload() if validated.afmetingen else None

    if not with_ai and (uploads or dimensions is not None):
        raise Conflict(AI_COLUMNS_MISSING)

    today = date.today()
    nummer = validated.nummer or generate_quote_number(today)
    known_company = resolve_company_id(conn, validated.klant, validated.bedrijf_id, create_if_missing=False)
    values = {
        "nummer": nummer,
        "klant": validated.klant,
        "bedrag": validated.bedrag,
        "datum": to_iso_date_or(validated.datum, today),
        "geldig_tot": to_iso_date_or(validated.geldig_tot, today + timedelta(days=VALID_DAYS)),
        "status": validated.status,
    }
    if with_ai:
        values.update({
            "ai_fotos": "[]",
            "ai_afmetingen": to_json(dimensions or {}),
            "ai_analyse": None,
            "ai_analyse_status": NOT_ANALYZED,
            "ai_analyse_fout": None,
            "ai_analyse_at": None,
        })

    try:
        with conn:
            values["bedrijf_id"] = known_company or resolve_company_id(conn, validated.klant)
            quote_id = insert_row(conn, "offertes", values)
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" in str(exc).upper():
            raise Conflict(f"Offertenummer {nummer} bestaat al.")
        raise

    if not with_ai:
        return jsonify(normalize_quote_row(_load_quote_row(conn, quote_id, False))), 201

    try:
        photos = store_quote_photos(get_storage(), quote_id, uploads)
        result = _analyze({
            "nummer": nummer,
            "klant": validated.klant,
            "bedrag": validated.bedrag,
            "dimensions": dimensions,
            "photos": photos,
        }, validated.ai_provider)
        with conn:
            update_row(conn, "offertes", quote_id, {"ai_fotos": to_json(photos), **_analysis_columns(result)})
    except Exception:
        with conn:
            delete_row(conn, "offertes", quote_id)
            if known_company is None and values["bedrijf_id"] is not None:
                delete_row(conn, "bedrijven", values["bedrijf_id"])
        raise

    return jsonify(normalize_quote_row(_load_quote_row(conn, quote_id, True))), 201


@bp.route("/<raw_id>", methods=["PATCH"])
@api_errors("Kon offerte niet bijwerken.")
def update_quote(raw_id):
    quote_id = require_id(raw_id, "offerte")
    validated = QuoteUpdate.model_validate(read_json_body())
    changes = validated.changes()
    conn = get_db()
    with_ai = supports_ai_columns(conn)

    if not with_ai and "afmetingen" in changes:
        raise Conflict(AI_COLUMNS_MISSING)

    today = date.today()
    update = {}
    if validated.klant is not None:
        update["klant"] = validated.klant
    if validated.bedrag is not None:
        update["bedrag"] = validated.bedrag
    if validated.datum is not None:
        update["datum"] = to_iso_date_or(validated.datum, today)
    if validated.geldig_tot is not None:
        update["geldig_tot"] = to_iso_date_or(validated.geldig_tot, today)
    if validated.status is not None:
        update["status"] = validated.status
    if "afmetingen" in changes:
        dimensions = validated.afmetingen.as_payload() if validated.afmetingen else None
        update["ai_afmetingen"] = to_json(dimensions or {})

    if not update:
        raise BadRequest("Geen wijzigingen opgegeven.")

    with conn:
        if not update_row(conn, "offertes", quote_id, update):
            raise NotFound("Offerte niet gevonden.")

    return jsonify(normalize_quote_row(_load_quote_row(conn, quote_id, with_ai)))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon offerte niet verwijderen.")
def delete_quote(raw_id):
    quote_id = require_id(raw_id, "offerte")
    conn = get_db()
    with_ai = supports_ai_columns(conn)

    row = _load_quote_row(conn, quote_id, with_ai)
    if with_ai:
        get_storage().remove(photo_paths(row))

    with conn:
        delete_row(conn, "offertes", quote_id)
    return jsonify({"success": True})


@bp.route("/<raw_id>/analyze", methods=["POST"])
@api_errors("Kon offerte niet analyseren.")
def analyze_quote(raw_id):
    quote_id = require_id(raw_id, "offerte")
    validated = AnalyzeRequest.model_validate(read_json_body())
    conn = get_db()

    if not supports_ai_columns(conn):
        raise Conflict(AI_COLUMNS_MISSING)

    quote = normalize_quote_row(_load_quote_row(conn, quote_id, True))
    result = _analyze({
        "nummer": quote["nummer"],
        "klant": quote["klant"],
        "bedrag": quote["bedrag"],
        "dimensions": quote["afmetingen"],
        "photos": quote["fotos"],
    }, validated.ai_provider)

    with conn:
        if not update_row(conn, "offertes", quote_id, _analysis_columns(result)):
            raise NotFound("Offerte niet gevonden.")

    logger.info("Quote %s analysis finished with status %s", quote["nummer"], result["status"])
    return jsonify(normalize_quote_row(_load_quote_row(conn, quote_id, True)))
