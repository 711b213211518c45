from datetime import datetime, timezone

from flask import Blueprint, jsonify

from .common import (
    normalize_participants,
    parse_json_field,
    read_json_body,
    require_id,
    resolve_company_id,
    with_company_name,
)
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, to_json, update_row
from .errors import BadRequest, NotFound, api_errors
from .schemas import AppointmentCreate, AppointmentUpdate

bp = Blueprint("appointments", __name__, url_prefix="/api/afspraken")

APPOINTMENT_COLUMNS = "id, titel, beschrijving, start_tijd, eind_tijd, locatie, deelnemers, bedrijf_id, created_at"


def combine_date_and_time(date_value: str, time_value: str):
    """Combine a local date and ``HH:MM[:SS]`` time into a UTC ISO timestamp."""
    time_text = f"{time_value}:00" if len(time_value) == 5 else time_value
    try:
        moment = datetime.fromisoformat(f"{date_value}T{time_text}")
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_date_and_time(timestamp):
    if timestamp:
        try:
            moment = datetime.fromisoformat(str(timestamp))
        except ValueError:
            moment = datetime.now()
    else:
        moment = datetime.now()
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date().isoformat(), moment.strftime("%H:%M")


def normalize_appointment_row(row):
    raw_participants = row.get("deelnemers")
    parsed = parse_json_field(raw_participants)
    return {
        "id": str(row["id"]),
        "titel": str(row.get("titel") or ""),
        "beschrijving": row.get("beschrijving") or None,
        "startTijd": row.get("start_tijd") or None,
        "eindTijd": row.get("eind_tijd") or None,
        "locatie": row.get("locatie") or None,
        "deelnemers": normalize_participants(parsed if parsed is not None else raw_participants),
        "bedrijf": row.get("companyName"),
        "bedrijfId": int(row["bedrijf_id"]) if row.get("bedrijf_id") is not None else None,
        "createdAt": row.get("created_at"),
    }


def _load_appointment(conn, appointment_id):
    row = fetch_one(conn, f"SELECT {APPOINTMENT_COLUMNS} FROM afspraken WHERE id = ?", (appointment_id,))
    if row is None:
        raise NotFound("Afspraak niet gevonden.")
    with_company_name(conn, [row])
    return normalize_appointment_row(row)


@bp.route("", methods=["GET"])
@api_errors("Kon afspraken niet laden.")
def list_appointments():
    conn = get_db()
    rows = fetch_all(
        conn,
        f"SELECT {APPOINTMENT_COLUMNS} FROM afspraken ORDER BY start_tijd ASC, id ASC LIMIT 500",
    )
    with_company_name(conn, rows)
    return jsonify([normalize_appointment_row(row) for row in rows])


@bp.route("", methods=["POST"])
@api_errors("Kon afspraak niet aanmaken.")
def create_appointment():
    validated = AppointmentCreate.model_validate(read_json_body())

    start = combine_date_and_time(validated.datum, validated.start_tijd)
    if not start:
        raise BadRequest("Ongeldige startdatum of starttijd.")

    end = None
    if validated.eind_tijd:
        end = combine_date_and_time(validated.datum, validated.eind_tijd)
        if not end:
            raise BadRequest("Ongeldige eindtijd.")

    conn = get_db()
    bedrijf_id = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)
    with conn:
        appointment_id = insert_row(conn, "afspraken", {
            "titel": validated.titel,
            "beschrijving": validated.beschrijving,
            "start_tijd": start,
            "eind_tijd": end,
            "locatie": validated.locatie,
            "deelnemers": to_json(validated.deelnemers),
            "bedrijf_id": bedrijf_id,
        })

    return jsonify(_load_appointment(conn, appointment_id)), 201


@bp.route("/<raw_id>", methods=["PATCH", "PUT"])
@api_errors("Kon afspraak niet bijwerken.")
def update_appointment(raw_id):
    appointment_id = require_id(raw_id, "afspraak")
    validated = AppointmentUpdate.model_validate(read_json_body())
    changes = validated.changes()
    conn = get_db()

    update = {}
    if changes.get("titel") is not None:
        update["titel"] = changes["titel"]
    for key in ("beschrijving", "locatie"):
        if key in changes:
            update[key] = changes[key]
    if changes.get("deelnemers") is not None:
        update["deelnemers"] = to_json(changes["deelnemers"])

    new_date = changes.get("datum")
    new_start = changes.get("start_tijd")
    end_given = "eind_tijd" in changes

    if new_date or new_start or end_given:
        current = fetch_one(conn, "SELECT id, start_tijd FROM afspraken WHERE id = ?", (appointment_id,))
        if current is None:
            raise NotFound("Afspraak niet gevonden.")
        base_date, base_time = local_date_and_time(current["start_tijd"])
        day = new_date or base_date

        if new_date or new_start:
            start = combine_date_and_time(day, new_start or base_time)
            if not start:
                raise BadRequest("Ongeldige startdatum of starttijd.")
            update["start_tijd"] = start

        if end_given:
            end = None
            if validated.eind_tijd:
                end = combine_date_and_time(day, validated.eind_tijd)
                if not end:
                    raise BadRequest("Ongeldige eindtijd.")
            update["eind_tijd"] = end

    if "bedrijf" in changes or "bedrijf_id" in changes:
        update["bedrijf_id"] = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)

    if not update:
        raise BadRequest("Geen wijzigingen opgegeven.")

    with conn:
        if not update_row(conn, "afspraken", appointment_id, update):
            raise NotFound("Afspraak niet gevonden.")

    return jsonify(_load_appointment(conn, appointment_id))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon afspraak niet verwijderen.")
def delete_appointment(raw_id):
    appointment_id = require_id(raw_id, "afspraak")
    conn = get_db()
    with conn:
        delete_row(conn, "afspraken", appointment_id)
    return jsonify({"success": True})
