from flask import Blueprint, jsonify, request

from .common import now_iso, read_json_body, require_id
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, update_row
from .deals import deal_company_field, detect_deals_schema_variant, normalize_deal_row, select_columns_for_variant
from .errors import NotFound, api_errors
from .schemas import CompanyCreate, CompanyUpdate

bp = Blueprint("companies", __name__, url_prefix="/api/companies")

COMPANY_COLUMNS = (
    "id, naam, adres, postcode, stad, email, telefoon, kvk, btw, sector, website, "
    "beschrijving, status, created_at, updated_at"
)


def normalize_company_row(row):
    return {
        "id": str(row["id"]),
        "naam": str(row.get("naam") or ""),
        "sector": row.get("sector"),
        "stad": row.get("stad"),
        "adres": row.get("adres"),
        "postcode": row.get("postcode"),
        "website": row.get("website"),
        "telefoon": row.get("telefoon"),
        "email": row.get("email"),
        "beschrijving": row.get("beschrijving"),
        "kvk": row.get("kvk"),
        "btw": row.get("btw"),
        "status": row.get("status") or "Actief",
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at") or row.get("created_at"),
    }


def _column_values(changes: dict) -> dict:
    values = {k: v for k, v in changes.items() if v is not None or k not in ("naam", "status")}
    if values.get("website") is not None:
        values["website"] = str(values["website"])
    return values


def _counts(conn, company_id: int) -> dict:
    company_field = deal_company_field(detect_deals_schema_variant(conn))

    def count(sql):
        return conn.execute(sql, (company_id,)).fetchone()[0]

    return {
        "contacts": count("SELECT COUNT(*) FROM contacten WHERE bedrijf_id = ?"),
        "deals": count(f"SELECT COUNT(*) FROM deals WHERE {company_field} = ?"),
        "projects": count("SELECT COUNT(*) FROM projecten WHERE bedrijf_id = ?"),
    }


def _load_company(conn, company_id: int):
    row = fetch_one(conn, f"SELECT {COMPANY_COLUMNS} FROM bedrijven WHERE id = ?", (company_id,))
    if row is None:
        raise NotFound("Bedrijf niet gevonden.")
    return row


# ================= ROUTES =================

@bp.route("", methods=["GET"])
@api_errors("Kon bedrijven niet laden.")
def list_companies():
    conn = get_db()
    where, params = [], []

    status = request.args.get("status")
    sector = request.args.get("sector")
    search = (request.args.get("search") or "").strip()

    if status:
        where.append("status = ?")
        params.append(status)
    if sector:
        where.append("sector = ?")
        params.append(sector)
    if search:
        where.append("(lower(naam) LIKE ? OR lower(coalesce(email, '')) LIKE ?)")
        needle = f"%{search.lower()}%"
        params.extend([needle, needle])

    sql = f"SELECT {COMPANY_COLUMNS} FROM bedrijven"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY created_at DESC, id DESC"

    companies = []
    for row in fetch_all(conn, sql, params):
        company = normalize_company_row(row)
        company["_count"] = _counts(conn, row["id"])
        companies.append(company)
    return jsonify(companies)


@bp.route("", methods=["POST"])
@api_errors("Kon bedrijf niet aanmaken.")
def create_company():
    validated = CompanyCreate.model_validate(read_json_body())
    conn = get_db()

    with conn:
        company_id = insert_row(conn, "bedrijven", _column_values(validated.model_dump()))

    return jsonify(normalize_company_row(_load_company(conn, company_id))), 201


@bp.route("/<raw_id>", methods=["GET"])
@api_errors("Kon bedrijf niet laden.")
def get_company(raw_id):
    company_id = require_id(raw_id, "bedrijf")
    conn = get_db()
    company = normalize_company_row(_load_company(conn, company_id))

    variant = detect_deals_schema_variant(conn)
    deals = fetch_all(
        conn,
        f"SELECT {select_columns_for_variant(variant)} FROM deals "
        f"WHERE {deal_company_field(variant)} = ? ORDER BY id",
        (company_id,),
    )

    company["contacts"] = fetch_all(
        conn,
        "SELECT id, voornaam, achternaam, email, telefoon, functie FROM contacten WHERE bedrijf_id = ? ORDER BY id",
        (company_id,),
    )
    company["deals"] = [normalize_deal_row({**deal, "companyName": company["naam"]}) for deal in deals]
    company["projects"] = fetch_all(
        conn,
        "SELECT id, naam, status, voortgang, deadline FROM projecten WHERE bedrijf_id = ? ORDER BY id",
        (company_id,),
    )
    company["quotes"] = fetch_all(
        conn,
        "SELECT id, nummer, bedrag, datum, status FROM offertes WHERE bedrijf_id = ? ORDER BY id",
        (company_id,),
    )
    return jsonify(company)


@bp.route("/<raw_id>", methods=["PUT", "PATCH"])
@api_errors("Kon bedrijf niet bijwerken.")
def update_company(raw_id):
    company_id = require_id(raw_id, "bedrijf")
    validated = CompanyUpdate.model_validate(read_json_body())
    changes = _column_values(validated.changes())
    conn = get_db()

    if changes:
        changes["updated_at"] = now_iso()
        with conn:
            if not update_row(conn, "bedrijven", company_id, changes):
                raise NotFound("Bedrijf niet gevonden.")

    return jsonify(normalize_company_row(_load_company(conn, company_id)))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon bedrijf niet verwijderen.")
def delete_company(raw_id):
    company_id = require_id(raw_id, "bedrijf")
    conn = get_db()
    with conn:
        if not delete_row(conn, "bedrijven", company_id):
            raise NotFound("Bedrijf niet gevonden.")
    return jsonify({"success": True})
