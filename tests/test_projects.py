def test_create_project_defaults(client):
    resp = client.post("/api/projecten", json={
        "naam": "Renovatie",
        "bedrijf": "Acme",
        "budget": "10000",
        "deadline": "2026-06-30T10:00:00Z",
    })
    assert resp.status_code == 201
    project = resp.get_json()
    assert project["status"] == "Actief"
    assert project["voortgang"] == 0
    assert project["budget"] == 10000
    assert project["budgetGebruikt"] == 0
    assert project["deadline"] == "2026-06-30"
    assert project["bedrijf"] == "Acme"


def test_project_without_deadline(client):
    project = client.post("/api/projecten", json={"naam": "Intern"}).get_json()
    assert project["deadline"] is None
    assert project["bedrijfId"] is None


def test_update_project(client):
    project = client.post("/api/projecten", json={"naam": "Renovatie", "deadline": "2026-01-01"}).get_json()
    url = f"/api/projecten/{project['id']}"

    assert client.patch(url, json={"voortgang": 150}).status_code == 400
    assert client.patch(url, json={"status": "Gepauzeerd"}).status_code == 400

    updated = client.patch(url, json={"voortgang": 40, "status": "On Hold", "budgetGebruikt": 2500}).get_json()
    assert updated["voortgang"] == 40
    assert updated["status"] == "On Hold"
    assert updated["budgetGebruikt"] == 2500
    assert updated["deadline"] == "2026-01-01"

    cleared = client.patch(url, json={"deadline": None}).get_json()
    assert cleared["deadline"] is None

    assert client.patch(url, json={}).status_code == 400
    assert client.patch("/api/projecten/77", json={"voortgang": 1}).status_code == 404


def test_delete_project(client):
    project = client.post("/api/projecten", json={"naam": "Renovatie"}).get_json()
    assert client.delete(f"/api/projecten/{project['id']}").get_json() == {"success": True}
    assert client.get("/api/projecten").get_json() == []
