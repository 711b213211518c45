import logging
import sqlite3
from datetime import date, timedelta

from flask import Blueprint, jsonify, render_template, request

from .common import now_iso
from .db import KNOWN_TABLES, fetch_all, fetch_one, get_db
from .errors import DatabaseNotConfigured, api_errors

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)

WEEKDAYS_NL = ["ma", "di", "wo", "do", "vr", "za", "zo"]


# ================= CHECKS =================

def database_status() -> str:
    try:
        conn = get_db()
    except DatabaseNotConfigured:
        return "not_configured"
    except sqlite3.Error as exc:
        logger.warning("Database unavailable: %s", exc)
        return "error"
    try:
        conn.execute("SELECT id FROM bedrijven LIMIT 1").fetchall()
    except sqlite3.Error as exc:
        logger.warning("Database check failed: %s", exc)
        return "error"
    return "connected"


def check_tables(conn) -> dict:
    results = {}
    for table in KNOWN_TABLES:
        try:
            results[table] = {"ok": True, "example": fetch_one(conn, f"SELECT id FROM {table} LIMIT 1")}
        except sqlite3.Error as exc:
            results[table] = {"ok": False, "error": str(exc)}
    return results


# ================= DASHBOARD =================

def _scalar(conn, sql, params=()):
    value = conn.execute(sql, params).fetchone()[0]
    return value or 0


def week_income(conn, today=None):
    today = today or date.today()
    start = today - timedelta(days=6)
    rows = fetch_all(
        conn,
        "SELECT substr(datum, 1, 10) AS dag, SUM(bedrag) AS totaal FROM inkomsten "
        "WHERE substr(datum, 1, 10) BETWEEN ? AND ? GROUP BY dag",
        (start.isoformat(), today.isoformat()),
    )
    totals = {row["dag"]: float(row["totaal"] or 0) for row in rows}

    week = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        week.append({
            "day": WEEKDAYS_NL[day.weekday()],
            "date": day.isoformat(),
            "amount": round(totals.get(day.isoformat(), 0.0), 2),
        })
    return week


def dashboard_summary(conn, today=None):
    return {
        "companies": _scalar(conn, "SELECT COUNT(*) FROM bedrijven"),
        "contacts": _scalar(conn, "SELECT COUNT(*) FROM contacten"),
        "activeProjects": _scalar(conn, "SELECT COUNT(*) FROM projecten WHERE status = 'Actief'"),
        "openQuotes": _scalar(conn, "SELECT COUNT(*) FROM offertes WHERE status = 'Openstaand'"),
        "openQuotesValue": float(_scalar(conn, "SELECT SUM(bedrag) FROM offertes WHERE status = 'Openstaand'")),
        "upcomingAppointments": _scalar(
            conn, "SELECT COUNT(*) FROM afspraken WHERE start_tijd >= ?", (now_iso(),)
        ),
        "weekIncome": week_income(conn, today),
    }


# ================= ROUTES =================

@bp.route("/")
def index():
    return render_template("index.html", summary=dashboard_summary(get_db()))


@bp.route("/api")
def health():
    return jsonify({
        "status": "online",
        "database": database_status(),
        "timestamp": now_iso(),
    })


@bp.route("/api/check-tables")
@api_errors("Kon tabellen niet controleren.")
def check_tables_route():
    return jsonify({"results": check_tables(get_db())})


@bp.route("/api/dashboard")
@api_errors("Kon dashboard niet laden.")
def dashboard():
    return jsonify(dashboard_summary(get_db()))


def e2e_stub():
    """Answer every /api request with a canned payload while E2E mode is on."""
    if not request.path.startswith("/api"):
        return None
    if request.method == "GET":
        return jsonify({"e2e": True, "path": request.path, "data": []})
    if request.method == "POST":
        return jsonify({"e2e": True, "path": request.path, "ok": True})
    return jsonify({"e2e": True, "path": request.path})
