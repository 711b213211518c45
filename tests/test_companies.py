def _create_company(client, **fields):
    payload = {"naam": "Bakkerij Jansen"}
    payload.update(fields)
    resp = client.post("/api/companies", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_company_normalizes_fields(client):
    company = _create_company(
        client,
        stad="Utrecht",
        website="https://jansen.nl",
        email="",
        phone="030-1234567",
    )
    assert company["naam"] == "Bakkerij Jansen"
    assert company["stad"] == "Utrecht"
    assert company["telefoon"] == "030-1234567"
    assert company["website"].startswith("https://jansen.nl")
    assert company["email"] is None
    assert company["status"] == "Actief"
    assert company["createdAt"] == company["updatedAt"]


def test_create_company_requires_name(client):
    resp = client.post("/api/companies", json={"naam": "   "})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "Validatiefout"
    assert body["details"]


def test_create_company_rejects_unknown_status(client):
    resp = client.post("/api/companies", json={"naam": "Acme", "status": "Slapend"})
    assert resp.status_code == 400


def test_list_companies_with_filters_and_counts(client):
    jansen = _create_company(client, sector="Horeca")
    _create_company(client, naam="Garage de Vries", sector="Auto")

    client.post("/api/contacts", json={"voornaam": "Kees", "achternaam": "Jansen", "bedrijfId": jansen["id"]})
    client.post("/api/deals", json={"titel": "Nieuwe oven", "waarde": 8000, "bedrijfId": jansen["id"]})

    everything = client.get("/api/companies").get_json()
    assert len(everything) == 2

    found = client.get("/api/companies?search=JANSEN").get_json()
    assert [c["naam"] for c in found] == ["Bakkerij Jansen"]
    assert found[0]["_count"] == {"contacts": 1, "deals": 1, "projects": 0}

    by_sector = client.get("/api/companies?sector=Auto").get_json()
    assert [c["naam"] for c in by_sector] == ["Garage de Vries"]


def test_company_detail_includes_related_records(client):
    company = _create_company(client)
    client.post("/api/contacts", json={"voornaam": "Kees", "achternaam": "Jansen", "bedrijfId": company["id"]})
    client.post("/api/deals", json={"titel": "Nieuwe oven", "waarde": 8000, "bedrijfId": company["id"]})
    client.post("/api/projecten", json={"naam": "Verbouwing", "bedrijfId": company["id"]})
    client.post("/api/offertes", json={"klant": "Bakkerij Jansen", "bedrag": 4300})

    detail = client.get(f"/api/companies/{company['id']}").get_json()
    assert [c["voornaam"] for c in detail["contacts"]] == ["Kees"]
    assert detail["deals"][0]["titel"] == "Nieuwe oven"
    assert detail["deals"][0]["bedrijf"] == "Bakkerij Jansen"
    assert [p["naam"] for p in detail["projects"]] == ["Verbouwing"]
    assert [q["bedrag"] for q in detail["quotes"]] == [4300]


def test_update_company_is_partial(client):
    company = _create_company(client, stad="Utrecht", sector="Horeca")

    resp = client.patch(f"/api/companies/{company['id']}", json={"stad": "Amersfoort"})
    assert resp.status_code == 200
    updated = resp.get_json()
    assert updated["stad"] == "Amersfoort"
    assert updated["sector"] == "Horeca"
    assert updated["naam"] == "Bakkerij Jansen"

    resp = client.put(f"/api/companies/{company['id']}", json={"sector": ""})
    assert resp.get_json()["sector"] is None


def test_empty_company_update_returns_current_row(client):
    company = _create_company(client, stad="Utrecht")

    resp = client.patch(f"/api/companies/{company['id']}", json={})
    assert resp.status_code == 200
    assert resp.get_json()["stad"] == "Utrecht"


def test_update_missing_company(client):
    resp = client.patch("/api/companies/999", json={"stad": "Breda"})
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Bedrijf niet gevonden."}


def test_delete_company_unlinks_contacts(client):
    company = _create_company(client)
    contact = client.post(
        "/api/contacts", json={"voornaam": "Kees", "achternaam": "Jansen", "bedrijfId": company["id"]}
    ).get_json()

    resp = client.delete(f"/api/companies/{company['id']}")
    assert resp.get_json() == {"success": True}

    contacts = client.get("/api/contacts").get_json()
    assert contacts[0]["id"] == contact["id"]
    assert contacts[0]["bedrijfId"] is None

    assert client.delete(f"/api/companies/{company['id']}").status_code == 404


def test_invalid_company_id(client):
    for raw in ("abc", "0", "-4", "1.5"):
        resp = client.get(f"/api/companies/{raw}")
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Ongeldig bedrijf-ID."}
