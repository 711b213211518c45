from flask import Blueprint, jsonify

from .common import now_iso, read_json_body, require_id, resolve_company_id, with_company_name
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, update_row
from .errors import BadRequest, NotFound, api_errors
from .schemas import ContactCreate, ContactUpdate

bp = Blueprint("contacts", __name__, url_prefix="/api/contacts")

CONTACT_COLUMNS = "id, voornaam, achternaam, email, telefoon, functie, bedrijf_id, created_at, updated_at"


def normalize_contact_row(row):
    return {
        "id": str(row["id"]),
        "voornaam": str(row.get("voornaam") or ""),
        "achternaam": str(row.get("achternaam") or ""),
        "email": row.get("email") or None,
        "telefoon": row.get("telefoon") or None,
        "functie": row.get("functie") or None,
        "bedrijf": row.get("companyName"),
        "bedrijfId": int(row["bedrijf_id"]) if row.get("bedrijf_id") is not None else None,
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at") or row.get("created_at"),
    }


def _load_contact(conn, contact_id):
    row = fetch_one(conn, f"SELECT {CONTACT_COLUMNS} FROM contacten WHERE id = ?", (contact_id,))
    if row is None:
        raise NotFound("Contact niet gevonden.")
    with_company_name(conn, [row])
    return normalize_contact_row(row)


@bp.route("", methods=["GET"])
@api_errors("Kon contacten niet laden.")
def list_contacts():
    conn = get_db()
    rows = fetch_all(
        conn,
        f"SELECT {CONTACT_COLUMNS} FROM contacten ORDER BY created_at DESC, id DESC LIMIT 500",
    )
    with_company_name(conn, rows)
    return jsonify([normalize_contact_row(row) for row in rows])


@bp.route("", methods=["POST"])
@api_errors("Kon contact niet aanmaken.")
def create_contact():
    validated = ContactCreate.model_validate(read_json_body())
    conn = get_db()

    bedrijf_id = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)
    with conn:
        contact_id = insert_row(conn, "contacten", {
            "voornaam": validated.voornaam,
            "achternaam": validated.achternaam,
            "email": validated.email,
            "telefoon": validated.telefoon,
            "functie": validated.functie,
            "bedrijf_id": bedrijf_id,
        })

    return jsonify(_load_contact(conn, contact_id)), 201


@bp.route("/<raw_id>", methods=["PUT", "PATCH"])
@api_errors("Kon contact niet bijwerken.")
def update_contact(raw_id):
    contact_id = require_id(raw_id, "contact")
    validated = ContactUpdate.model_validate(read_json_body())
    changes = validated.changes()
    conn = get_db()

    update = {}
    for key in ("voornaam", "achternaam"):
        if changes.get(key) is not None:
            update[key] = changes[key]
    for key in ("email", "telefoon", "functie"):
        if key in changes:
            update[key] = changes[key]

    # An explicit null unlinks the company, an empty name leaves it alone.
    if validated.bedrijf_id is not None:
        update["bedrijf_id"] = validated.bedrijf_id
    elif "bedrijf" in changes and validated.bedrijf is None:
        update["bedrijf_id"] = None
    elif validated.bedrijf:
        update["bedrijf_id"] = resolve_company_id(conn, validated.bedrijf)

    if not update:
        raise BadRequest("Geen wijzigingen opgegeven.")

    update["updated_at"] = now_iso()
    with conn:
        if not update_row(conn, "contacten", contact_id, update):
            raise NotFound("Contact niet gevonden.")

    return jsonify(_load_contact(conn, contact_id))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon contact niet verwijderen.")
def delete_contact(raw_id):
    contact_id = require_id(raw_id, "contact")
    conn = get_db()
    with conn:
        delete_row(conn, "contacten", contact_id)
    return jsonify({"success": True})
