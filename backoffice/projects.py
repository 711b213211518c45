from flask import Blueprint, jsonify

from .common import now_iso, read_json_body, require_id, resolve_company_id, to_iso_date, with_company_name
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, update_row
from .errors import BadRequest, NotFound, api_errors
from .schemas import PROJECT_STATUSES, ProjectCreate, ProjectUpdate

bp = Blueprint("projects", __name__, url_prefix="/api/projecten")

PROJECT_COLUMNS = "id, naam, beschrijving, status, voortgang, deadline, budget, budget_gebruikt, bedrijf_id, created_at"


def normalize_project_row(row):
    status = row.get("status")
    return {
        "id": str(row["id"]),
        "naam": str(row.get("naam") or ""),
        "beschrijving": row.get("beschrijving") or None,
        "bedrijf": row.get("companyName"),
        "bedrijfId": int(row["bedrijf_id"]) if row.get("bedrijf_id") is not None else None,
        "status": status if status in PROJECT_STATUSES else "Actief",
        "voortgang": int(row.get("voortgang") or 0),
        "deadline": str(row["deadline"])[:10] if row.get("deadline") else None,
        "budget": float(row.get("budget") or 0),
        "budgetGebruikt": float(row.get("budget_gebruikt") or 0),
        "createdAt": row.get("created_at"),
    }


def _load_project(conn, project_id):
    row = fetch_one(conn, f"SELECT {PROJECT_COLUMNS} FROM projecten WHERE id = ?", (project_id,))
    if row is None:
        raise NotFound("Project niet gevonden.")
    with_company_name(conn, [row])
    return normalize_project_row(row)


@bp.route("", methods=["GET"])
@api_errors("Kon projecten niet laden.")
def list_projects():
    conn = get_db()
    rows = fetch_all(
        conn,
        f"SELECT {PROJECT_COLUMNS} FROM projecten ORDER BY created_at DESC, id DESC LIMIT 500",
    )
    with_company_name(conn, rows)
    return jsonify([normalize_project_row(row) for row in rows])


@bp.route("", methods=["POST"])
@api_errors("Kon project niet aanmaken.")
def create_project():
    validated = ProjectCreate.model_validate(read_json_body())
    conn = get_db()

    bedrijf_id = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)
    with conn:
        project_id = insert_row(conn, "projecten", {
            "naam": validated.naam,
            "beschrijving": validated.beschrijving,
            "status": validated.status,
            "voortgang": validated.voortgang,
            "deadline": to_iso_date(validated.deadline),
            "budget": validated.budget,
            "budget_gebruikt": validated.budget_gebruikt or 0,
            "bedrijf_id": bedrijf_id,
        })

    return jsonify(_load_project(conn, project_id)), 201


@bp.route("/<raw_id>", methods=["PATCH", "PUT"])
@api_errors("Kon project niet bijwerken.")
def update_project(raw_id):
    project_id = require_id(raw_id, "project")
    validated = ProjectUpdate.model_validate(read_json_body())
    changes = validated.changes()
    conn = get_db()

    update = {
        key: changes[key]
        for key in ("naam", "status", "voortgang", "budget", "budget_gebruikt")
        if changes.get(key) is not None
    }
    if "beschrijving" in changes:
        update["beschrijving"] = changes["beschrijving"]
    if "deadline" in changes:
        update["deadline"] = to_iso_date(changes["deadline"])
    if "bedrijf" in changes or "bedrijf_id" in changes:
        update["bedrijf_id"] = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)

    if not update:
        raise BadRequest("Geen wijzigingen opgegeven.")

    update["updated_at"] = now_iso()
    with conn:
        if not update_row(conn, "projecten", project_id, update):
            raise NotFound("Project niet gevonden.")

    return jsonify(_load_project(conn, project_id))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon project niet verwijderen.")
def delete_project(raw_id):
    project_id = require_id(raw_id, "project")
    conn = get_db()
    with conn:
        delete_row(conn, "projecten", project_id)
    return jsonify({"success": True})
