"""Income (inkomsten) and expenses (uitgaven).

Both ledgers share the same shape; expenses also record a supplier.
"""

from datetime import date

from flask import Blueprint, jsonify

from .common import read_json_body, require_id, resolve_company_id, to_iso_date_or, with_company_name
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, update_row
from .errors import BadRequest, NotFound, api_errors
from .schemas import ExpenseCreate, ExpenseUpdate, IncomeCreate, IncomeUpdate

income_bp = Blueprint("income", __name__, url_prefix="/api/inkomsten")
expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/uitgaven")

INCOME_COLUMNS = "id, titel, omschrijving, bedrag, datum, categorie, betaalmethode, bedrijf_id, created_at"
EXPENSE_COLUMNS = "id, titel, omschrijving, leverancier, bedrag, datum, categorie, betaalmethode, bedrijf_id, created_at"


def _normalize_entry(row, fallback_label):
    return {
        "id": str(row["id"]),
        "titel": str(row.get("titel") or row.get("omschrijving") or f"{fallback_label} {row['id']}"),
        "omschrijving": row.get("omschrijving") or None,
        "bedrijf": row.get("companyName"),
        "bedrijfId": int(row["bedrijf_id"]) if row.get("bedrijf_id") is not None else None,
        "bedrag": float(row.get("bedrag") or 0),
        "datum": str(row["datum"])[:10] if row.get("datum") else None,
        "categorie": row.get("categorie") or None,
        "betaalmethode": row.get("betaalmethode") or None,
        "createdAt": row.get("created_at"),
    }


def normalize_income_row(row):
    return _normalize_entry(row, "Inkomst")


def normalize_expense_row(row):
    entry = _normalize_entry(row, "Uitgave")
    entry["leverancier"] = row.get("leverancier") or None
    return entry


class Ledger:
    def __init__(self, table, columns, normalize, create_schema, update_schema, label, id_label, extra_fields=()):
        self.table = table
        self.columns = columns
        self.normalize = normalize
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.label = label
        self.id_label = id_label
        self.extra_fields = extra_fields

    def load(self, conn, entry_id):
        row = fetch_one(conn, f"SELECT {self.columns} FROM {self.table} WHERE id = ?", (entry_id,))
        if row is None:
            raise NotFound(f"{self.label} niet gevonden.")
        with_company_name(conn, [row])
        return self.normalize(row)

    def list(self):
        conn = get_db()
        rows = fetch_all(
            conn,
            f"SELECT {self.columns} FROM {self.table} ORDER BY datum DESC, id DESC LIMIT 500",
        )
        with_company_name(conn, rows)
        return jsonify([self.normalize(row) for row in rows])

    def create(self):
        validated = self.create_schema.model_validate(read_json_body())
        conn = get_db()

        bedrijf_id = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)
        values = {
            "titel": validated.titel or validated.omschrijving,
            "omschrijving": validated.omschrijving,
            "bedrag": validated.bedrag,
            "datum": to_iso_date_or(validated.datum, date.today()),
            "categorie": validated.categorie,
            "betaalmethode": validated.betaalmethode,
            "bedrijf_id": bedrijf_id,
        }
        for field in self.extra_fields:
            values[field] = getattr(validated, field)

        with conn:
            entry_id = insert_row(conn, self.table, values)
        return jsonify(self.load(conn, entry_id)), 201

    def update(self, raw_id):
        entry_id = require_id(raw_id, self.id_label)
        validated = self.update_schema.model_validate(read_json_body())
        changes = validated.changes()
        conn = get_db()

        update = {}
        for key in ("titel", "omschrijving", "categorie", "betaalmethode", *self.extra_fields):
            if key in changes:
                update[key] = changes[key]
        if changes.get("bedrag") is not None:
            update["bedrag"] = changes["bedrag"]
        if "datum" in changes:
            update["datum"] = to_iso_date_or(changes["datum"], date.today())
        if "bedrijf" in changes or "bedrijf_id" in changes:
            update["bedrijf_id"] = resolve_company_id(conn, validated.bedrijf, validated.bedrijf_id)

        if not update:
            raise BadRequest("Geen wijzigingen opgegeven.")

        with conn:
            if not update_row(conn, self.table, entry_id, update):
                raise NotFound(f"{self.label} niet gevonden.")
        return jsonify(self.load(conn, entry_id))

    def delete(self, raw_id):
        entry_id = require_id(raw_id, self.id_label)
        conn = get_db()
        with conn:
            delete_row(conn, self.table, entry_id)
        return jsonify({"success": True})


income = Ledger(
    "inkomsten", INCOME_COLUMNS, normalize_income_row, IncomeCreate, IncomeUpdate,
    label="Inkomst", id_label="inkomsten",
)
expenses = Ledger(
    "uitgaven", EXPENSE_COLUMNS, normalize_expense_row, ExpenseCreate, ExpenseUpdate,
    label="Uitgave", id_label="uitgaven", extra_fields=("leverancier",),
)


# ================= ROUTES =================

@income_bp.route("", methods=["GET"])
@api_errors("Kon inkomsten niet laden.")
def list_income():
    return income.list()


@income_bp.route("", methods=["POST"])
@api_errors("Kon inkomst niet aanmaken.")
def create_income():
    return income.create()


@income_bp.route("/<raw_id>", methods=["PATCH", "PUT"])
@api_errors("Kon inkomst niet bijwerken.")
def update_income(raw_id):
    return income.update(raw_id)


@income_bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon inkomst niet verwijderen.")
def delete_income(raw_id):
    return income.delete(raw_id)


@expenses_bp.route("", methods=["GET"])
@api_errors("Kon uitgaven niet laden.")
def list_expenses():
    return expenses.list()


@expenses_bp.route("", methods=["POST"])
@api_errors("Kon uitgave niet aanmaken.")
def create_expense():
    return expenses.create()


@expenses_bp.route("/<raw_id>", methods=["PATCH", "PUT"])
@api_errors("Kon uitgave niet bijwerken.")
def update_expense(raw_id):
    return expenses.update(raw_id)


@expenses_bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon uitgave niet verwijderen.")
def delete_expense(raw_id):
    return expenses.delete(raw_id)
