import logging
import random
import sqlite3
import time
from datetime import date, timedelta
from io import BytesIO
from xml.sax.saxutils import escape

from flask import Blueprint, jsonify, send_file
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from werkzeug.utils import secure_filename

from .common import date_part, now_iso, parse_json_field, read_json_body, require_id, to_iso_date, to_iso_date_or
from .db import delete_row, fetch_all, fetch_one, get_db, insert_row, to_json, update_row
from .errors import BadRequest, Conflict, NotFound, api_errors
from .media import get_storage
from .schemas import INVOICE_STATUSES, InvoiceCreate, InvoiceUpdate

logger = logging.getLogger(__name__)

bp = Blueprint("invoices", __name__, url_prefix="/api/facturen")

INVOICE_COLUMNS = (
    "id, nummer, klant, klant_email, bedrag, btw_bedrag, totaal_bedrag, datum, verval_datum, status, "
    "betaald_op, betaal_methode, items, timeline, herinneringen_verstuurd, pdf_url, notities, created_at"
)

PAYMENT_TERM_DAYS = 14


def normalize_invoice_row(row):
    items = parse_json_field(row.get("items"))
    timeline = parse_json_field(row.get("timeline"))
    return {
        "id": str(row["id"]),
        "nummer": str(row["nummer"]),
        "klant": str(row.get("klant") or ""),
        "klantEmail": str(row.get("klant_email") or ""),
        "bedrag": float(row.get("bedrag") or 0),
        "btwBedrag": float(row.get("btw_bedrag") or 0),
        "totaalBedrag": float(row.get("totaal_bedrag") or 0),
        "datum": date_part(row.get("datum")),
        "vervalDatum": date_part(row.get("verval_datum")),
        "status": row.get("status") if row.get("status") in INVOICE_STATUSES else "Concept",
        "betaaldOp": date_part(row.get("betaald_op")),
        "betaalMethode": row.get("betaal_methode") or None,
        "items": items if isinstance(items, list) else [],
        "timeline": timeline if isinstance(timeline, list) else [],
        "herinneringenVerstuurd": int(row.get("herinneringen_verstuurd") or 0),
        "pdfUrl": row.get("pdf_url") or None,
        "notities": row.get("notities") or "",
        "createdAt": row.get("created_at"),
    }


def generate_invoice_number(today=None) -> str:
    year = (today or date.today()).year
    return f"F-{year}-{random.randint(100, 999)}"


def compute_totals(items):
    subtotal = 0.0
    vat = 0.0
    for item in items:
        line = float(item.get("aantal") or 0) * float(item.get("prijs") or 0)
        subtotal += line
        vat += line * (float(item.get("btw") or 0) / 100)
    return {
        "bedrag": round(subtotal, 2),
        "btwBedrag": round(vat, 2),
        "totaalBedrag": round(subtotal + vat, 2),
    }


def invoice_dates(datum=None, verval_datum=None, today=None):
    today = today or date.today()
    return {
        "datum": to_iso_date_or(datum, today),
        "verval_datum": to_iso_date_or(verval_datum, today + timedelta(days=PAYMENT_TERM_DAYS)),
    }


def timeline_event(kind: str, description: str) -> dict:
    return {
        "id": str(int(time.time() * 1000)),
        "type": kind,
        "date": now_iso(),
        "description": description,
        "user": "Systeem",
    }


def _load_invoice_row(conn, invoice_id):
    row = fetch_one(conn, f"SELECT {INVOICE_COLUMNS} FROM facturen WHERE id = ?", (invoice_id,))
    if row is None:
        raise NotFound("Factuur niet gevonden.")
    return row


# ================= PDF =================

def _money(value) -> str:
    return f"€{float(value):.2f}"


def render_invoice_pdf(invoice: dict) -> bytes:
    """Render a normalized invoice as an A4 PDF."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
        title=f"Factuur {invoice['nummer']}",
    )
    styles = getSampleStyleSheet()
    normal = styles["Normal"]
    elements = []

    header = Table(
        [[
            Paragraph("FACTUUR", styles["Title"]),
            Paragraph(
                f"Factuurnummer: {escape(invoice['nummer'])}<br/>"
                f"Datum: {invoice['datum'] or 'Niet opgegeven'}"
                + (f"<br/>Vervaldatum: {invoice['vervalDatum']}" if invoice["vervalDatum"] else ""),
                normal,
            ),
        ]],
        colWidths=[95 * mm, 79 * mm],
    )
    header.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    elements.append(header)
    elements.append(Spacer(1, 18))

    elements.append(Paragraph("Factuur aan:", styles["Heading3"]))
    elements.append(Paragraph(escape(invoice["klant"]), normal))
    if invoice["klantEmail"]:
        elements.append(Paragraph(escape(invoice["klantEmail"]), normal))
    elements.append(Spacer(1, 18))

    rows = [["Omschrijving", "Aantal", "Prijs", "Totaal"]]
    for item in invoice["items"]:
        description = item.get("description") or item.get("omschrijving") or "Geen omschrijving"
        quantity = float(item.get("quantity") or item.get("aantal") or 0)
        price = float(item.get("price") or item.get("prijs") or 0)
        rows.append([
            Paragraph(escape(str(description)), normal),
            f"{quantity:g}",
            _money(price),
            _money(quantity * price),
        ])

    items_table = Table(rows, colWidths=[94 * mm, 20 * mm, 30 * mm, 30 * mm], repeatRows=1)
    items_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.Color(0.9, 0.9, 0.9)),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 12))

    totals = Table(
        [
            ["Subtotaal:", _money(invoice["bedrag"])],
            ["BTW:", _money(invoice["btwBedrag"])],
            ["Totaal:", _money(invoice["totaalBedrag"])],
        ],
        colWidths=[30 * mm, 30 * mm],
        hAlign="RIGHT",
    )
    totals.setStyle(TableStyle([
        ("LINEABOVE", (0, 0), (-1, 0), 1, colors.grey),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTNAME", (0, 2), (-1, 2), "Helvetica-Bold"),
        ("FONTSIZE", (0, 2), (-1, 2), 12),
    ]))
    elements.append(totals)
    elements.append(Spacer(1, 30))

    elements.append(Paragraph(f"Status: {escape(invoice['status'])}", normal))
    if invoice["betaaldOp"]:
        elements.append(Paragraph(f"Betaald op: {invoice['betaaldOp']}", normal))

    if invoice["notities"]:
        elements.append(Spacer(1, 18))
        elements.append(Paragraph("Opmerkingen:", styles["Heading4"]))
        for line in invoice["notities"].split("\n"):
            elements.append(Paragraph(escape(line) or "&nbsp;", normal))

    doc.build(elements)
    return buffer.getvalue()


def invoice_pdf_path(nummer: str) -> str:
    return f"facturen/factuur-{secure_filename(nummer) or 'onbekend'}.pdf"


# ================= ROUTES =================

@bp.route("", methods=["GET"])
@api_errors("Kon facturen niet laden.")
def list_invoices():
    rows = fetch_all(
        get_db(),
        f"SELECT {INVOICE_COLUMNS} FROM facturen ORDER BY created_at DESC, id DESC LIMIT 500",
    )
    return jsonify([normalize_invoice_row(row) for row in rows])


@bp.route("", methods=["POST"])
@api_errors("Kon factuur niet aanmaken.")
def create_invoice():
    validated = InvoiceCreate.model_validate(read_json_body())
    conn = get_db()

    nummer = validated.nummer or generate_invoice_number()
    items = [item.model_dump() for item in validated.items]
    totals = compute_totals(items)
    dates = invoice_dates(validated.datum, validated.verval_datum)

    try:
        with conn:
            invoice_id = insert_row(conn, "facturen", {
                "nummer": nummer,
                "klant": validated.klant,
                "klant_email": validated.klant_email,
                "bedrag": totals["bedrag"],
                "btw_bedrag": totals["btwBedrag"],
                "totaal_bedrag": totals["totaalBedrag"],
                "datum": dates["datum"],
                "verval_datum": dates["verval_datum"],
                "status": validated.status,
                "betaald_op": None,
                "betaal_methode": None,
                "items": to_json(items),
                "timeline": to_json([timeline_event("created", "Factuur aangemaakt")]),
                "herinneringen_verstuurd": 0,
                "pdf_url": None,
                "notities": validated.notities or None,
            })
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" in str(exc).upper():
            raise Conflict(f"Factuurnummer {nummer} bestaat al.")
        raise

    return jsonify(normalize_invoice_row(_load_invoice_row(conn, invoice_id))), 201


@bp.route("/<raw_id>", methods=["PATCH"])
@api_errors("Kon factuur niet bijwerken.")
def update_invoice(raw_id):
    invoice_id = require_id(raw_id, "factuur")
    validated = InvoiceUpdate.model_validate(read_json_body())
    changes = validated.changes()
    conn = get_db()

    update = {}
    if validated.status:
        update["status"] = validated.status
    if "betaald_op" in changes:
        update["betaald_op"] = to_iso_date(validated.betaald_op)
    if "betaal_methode" in changes:
        update["betaal_methode"] = validated.betaal_methode
    if validated.timeline is not None:
        timeline = validated.timeline
        if isinstance(timeline, str):
            timeline = parse_json_field(timeline)
        if isinstance(timeline, list):
            update["timeline"] = to_json(timeline)

    if validated.increment_herinnering:
        current = _load_invoice_row(conn, invoice_id)
        count = int(current.get("herinneringen_verstuurd") or 0) + 1
        history = parse_json_field(current.get("timeline"))
        history = history if isinstance(history, list) else []
        history.append(timeline_event("reminder", f"Betalingsherinnering #{count} verstuurd"))
        update["herinneringen_verstuurd"] = count
        update["timeline"] = to_json(history)
    if validated.reminders_sent is not None:
        update["herinneringen_verstuurd"] = validated.reminders_sent

    if not update:
        raise BadRequest("Geen wijzigingen opgegeven.")

    with conn:
        if not update_row(conn, "facturen", invoice_id, update):
            raise NotFound("Factuur niet gevonden.")

    return jsonify(normalize_invoice_row(_load_invoice_row(conn, invoice_id)))


@bp.route("/<raw_id>", methods=["DELETE"])
@api_errors("Kon factuur niet verwijderen.")
def delete_invoice(raw_id):
    invoice_id = require_id(raw_id, "factuur")
    conn = get_db()

    row = _load_invoice_row(conn, invoice_id)
    if row.get("status") != "Concept":
        raise Conflict("Alleen concept facturen kunnen worden verwijderd.")

    with conn:
        delete_row(conn, "facturen", invoice_id)
    if row.get("pdf_url"):
        get_storage().remove([invoice_pdf_path(row["nummer"])])
    return jsonify({"ok": True})


@bp.route("/<raw_id>/pdf", methods=["POST"])
@api_errors("Kon PDF niet genereren")
def generate_invoice_pdf(raw_id):
    invoice_id = require_id(raw_id, "factuur")
    conn = get_db()
    invoice = normalize_invoice_row(_load_invoice_row(conn, invoice_id))

    storage = get_storage()
    object_path = storage.save(invoice_pdf_path(invoice["nummer"]), render_invoice_pdf(invoice), overwrite=True)
    public_url = storage.public_url(object_path)

    with conn:
        update_row(conn, "facturen", invoice_id, {"pdf_url": public_url})

    logger.info("Rendered PDF for factuur %s", invoice["nummer"])
    return jsonify({"pdfUrl": public_url})


@bp.route("/<raw_id>/pdf", methods=["GET"])
@api_errors("Kon PDF niet genereren")
def download_invoice_pdf(raw_id):
    invoice_id = require_id(raw_id, "factuur")
    invoice = normalize_invoice_row(_load_invoice_row(get_db(), invoice_id))

    buffer = BytesIO(render_invoice_pdf(invoice))
    return send_file(
        buffer,
        as_attachment=True,
        download_name=f"factuur-{secure_filename(invoice['nummer']) or invoice['id']}.pdf",
        mimetype="application/pdf",
    )


