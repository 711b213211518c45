def _create_contact(client, **fields):
    payload = {"voornaam": "Sanne", "achternaam": "Bakker", "email": "sanne@example.com"}
    payload.update(fields)
    resp = client.post("/api/contacts", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_contact_resolves_company_by_name(client):
    first = _create_contact(client, bedrijf="Nieuw BV")
    assert first["bedrijf"] == "Nieuw BV"
    assert isinstance(first["bedrijfId"], int)

    second = _create_contact(client, voornaam="Piet", bedrijf="  nieuw bv ")
    assert second["bedrijfId"] == first["bedrijfId"]
    assert len(client.get("/api/companies").get_json()) == 1


def test_create_contact_accepts_english_aliases(client):
    resp = client.post("/api/contacts", json={"firstName": "Anna", "lastName": "de Wit", "position": "CFO"})
    assert resp.status_code == 201, resp.get_json()
    contact = resp.get_json()
    assert contact["voornaam"] == "Anna"
    assert contact["achternaam"] == "de Wit"
    assert contact["functie"] == "CFO"
    assert contact["bedrijfId"] is None


def test_create_contact_rejects_invalid_email(client):
    resp = client.post("/api/contacts", json={"voornaam": "A", "achternaam": "B", "email": "geen-mail"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Validatiefout"


def test_patch_only_touches_given_fields(client):
    contact = _create_contact(client, bedrijf="Acme", telefoon="06-12345678")

    updated = client.patch(f"/api/contacts/{contact['id']}", json={"functie": "CTO"}).get_json()
    assert updated["functie"] == "CTO"
    assert updated["email"] == "sanne@example.com"
    assert updated["telefoon"] == "06-12345678"
    assert updated["bedrijf"] == "Acme"


def test_patch_company_link_rules(client):
    contact = _create_contact(client, bedrijf="Acme")
    url = f"/api/contacts/{contact['id']}"

    unchanged = client.patch(url, json={"bedrijf": "", "functie": "Inkoper"}).get_json()
    assert unchanged["bedrijf"] == "Acme"

    moved = client.patch(url, json={"bedrijf": "Globex"}).get_json()
    assert moved["bedrijf"] == "Globex"

    cleared = client.patch(url, json={"bedrijf": None}).get_json()
    assert cleared["bedrijfId"] is None
    assert cleared["bedrijf"] is None

    relinked = client.patch(url, json={"bedrijfId": contact["bedrijfId"]}).get_json()
    assert relinked["bedrijf"] == "Acme"


def test_patch_without_changes(client):
    contact = _create_contact(client)
    resp = client.patch(f"/api/contacts/{contact['id']}", json={})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Geen wijzigingen opgegeven."}


def test_patch_missing_contact(client):
    resp = client.patch("/api/contacts/404", json={"functie": "CEO"})
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Contact niet gevonden."}


def test_delete_contact(client):
    contact = _create_contact(client)
    assert client.delete(f"/api/contacts/{contact['id']}").get_json() == {"success": True}
    assert client.get("/api/contacts").get_json() == []
    assert client.delete("/api/contacts/x").get_json() == {"error": "Ongeldig contact-ID."}
