import re
from datetime import date, timedelta
from pathlib import Path

from backoffice.invoices import compute_totals, generate_invoice_number


def _invoice_payload(**fields):
    payload = {
        "nummer": "F-2026-001",
        "klant": "Acme",
        "klantEmail": "boekhouding@acme.nl",
        "items": [
            {"id": 1, "omschrijving": "Advies", "aantal": 2, "prijs": 100, "btw": 21},
            {"id": "b", "omschrijving": "Reiskosten", "aantal": 3, "prijs": 9.99, "btw": 9},
        ],
    }
    payload.update(fields)
    return payload


def _create_invoice(client, **fields):
    resp = client.post("/api/facturen", json=_invoice_payload(**fields))
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_compute_totals_rounds_to_cents():
    totals = compute_totals([
        {"aantal": 2, "prijs": 100, "btw": 21},
        {"aantal": 3, "prijs": 9.99, "btw": 9},
    ])
    assert totals == {"bedrag": 229.97, "btwBedrag": 44.7, "totaalBedrag": 274.67}


def test_generate_invoice_number():
    assert re.fullmatch(r"F-2026-\d{3}", generate_invoice_number(date(2026, 3, 1)))


def test_create_invoice_defaults(client):
    invoice = _create_invoice(client, nummer=None)
    today = date.today()

    assert re.fullmatch(rf"F-{today.year}-\d{{3}}", invoice["nummer"])
    assert invoice["status"] == "Concept"
    assert invoice["datum"] == today.isoformat()
    assert invoice["vervalDatum"] == (today + timedelta(days=14)).isoformat()
    assert invoice["totaalBedrag"] == 274.67
    assert [item["id"] for item in invoice["items"]] == ["1", "b"]
    assert invoice["herinneringenVerstuurd"] == 0
    assert invoice["pdfUrl"] is None

    created = invoice["timeline"][0]
    assert created["type"] == "created"
    assert created["description"] == "Factuur aangemaakt"
    assert created["user"] == "Systeem"


def test_create_invoice_validation(client):
    assert client.post("/api/facturen", json=_invoice_payload(items=[])).status_code == 400
    assert client.post("/api/facturen", json=_invoice_payload(klantEmail="nope")).status_code == 400
    bad_item = {"id": 1, "omschrijving": "X", "aantal": 0, "prijs": 1, "btw": 21}
    assert client.post("/api/facturen", json=_invoice_payload(items=[bad_item])).status_code == 400


def test_duplicate_invoice_number(client):
    _create_invoice(client)
    resp = client.post("/api/facturen", json=_invoice_payload())
    assert resp.status_code == 409
    assert resp.get_json() == {"error": "Factuurnummer F-2026-001 bestaat al."}


def test_reminders_extend_the_timeline(client):
    invoice = _create_invoice(client)
    url = f"/api/facturen/{invoice['id']}"

    client.patch(url, json={"incrementHerinnering": True})
    updated = client.patch(url, json={"incrementHerinnering": True}).get_json()

    assert updated["herinneringenVerstuurd"] == 2
    assert len(updated["timeline"]) == 3
    assert updated["timeline"][-1]["type"] == "reminder"
    assert updated["timeline"][-1]["description"] == "Betalingsherinnering #2 verstuurd"

    reset = client.patch(url, json={"remindersSent": 0}).get_json()
    assert reset["herinneringenVerstuurd"] == 0


def test_mark_invoice_paid(client):
    invoice = _create_invoice(client)
    updated = client.patch(f"/api/facturen/{invoice['id']}", json={
        "status": "Betaald",
        "paidAt": "2026-02-03T15:00:00Z",
        "paymentMethod": "iDEAL",
    }).get_json()
    assert updated["status"] == "Betaald"
    assert updated["betaaldOp"] == "2026-02-03"
    assert updated["betaalMethode"] == "iDEAL"


def test_patch_timeline(client):
    invoice = _create_invoice(client)
    url = f"/api/facturen/{invoice['id']}"

    replaced = client.patch(url, json={"timeline": '[{"id": "1", "type": "note"}]'}).get_json()
    assert replaced["timeline"] == [{"id": "1", "type": "note"}]

    resp = client.patch(url, json={"timeline": "geen json"})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Geen wijzigingen opgegeven."}

    assert client.patch("/api/facturen/999", json={"status": "Verzonden"}).status_code == 404


def test_only_concept_invoices_can_be_deleted(client):
    sent = _create_invoice(client, status="Verzonden")
    resp = client.delete(f"/api/facturen/{sent['id']}")
    assert resp.status_code == 409
    assert resp.get_json() == {"error": "Alleen concept facturen kunnen worden verwijderd."}

    concept = _create_invoice(client, nummer="F-2026-002")
    assert client.delete(f"/api/facturen/{concept['id']}").get_json() == {"ok": True}
    assert client.delete(f"/api/facturen/{concept['id']}").status_code == 404


def test_generate_pdf_stores_file(app, client):
    invoice = _create_invoice(client, notities="Let op: A & B <snel>\nTweede regel")

    resp = client.post(f"/api/facturen/{invoice['id']}/pdf")
    assert resp.status_code == 200
    pdf_url = resp.get_json()["pdfUrl"]
    assert pdf_url == "/media/facturen/factuur-F-2026-001.pdf"

    stored = Path(app.config["MEDIA_DIR"]) / "facturen" / "factuur-F-2026-001.pdf"
    assert stored.read_bytes().startswith(b"%PDF")

    served = client.get(pdf_url)
    assert served.status_code == 200
    assert served.data.startswith(b"%PDF")

    assert client.get("/api/facturen").get_json()[0]["pdfUrl"] == pdf_url

    # regenerating overwrites the stored file
    assert client.post(f"/api/facturen/{invoice['id']}/pdf").status_code == 200


def test_download_pdf(client):
    invoice = _create_invoice(client)
    resp = client.get(f"/api/facturen/{invoice['id']}/pdf")
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert "attachment" in resp.headers["Content-Disposition"]
    assert "factuur-F-2026-001.pdf" in resp.headers["Content-Disposition"]
    assert resp.data.startswith(b"%PDF")

    assert client.get("/api/facturen/999/pdf").status_code == 404
