"""
Tests for health records (vaccinations, deworming, treatments).
"""
from conftest import register

WHEN = "2024-05-10T08:30:00"


def _animal(client, headers, brinco="123"):
    response = client.post("/api/animals", json={"brinco": brinco}, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_create_by_animal_id(client, auth_headers):
    animal = _animal(client, auth_headers)
    response = client.post(
        "/api/health",
        json={"animal_id": animal["id"], "type": "Vacina", "product": "Aftosa", "date": WHEN},
        headers=auth_headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["animal_id"] == animal["id"]
    assert body["brinco"] == "123"
    assert body["product"] == "Aftosa"


def test_create_by_brinco(client, auth_headers):
    animal = _animal(client, auth_headers, brinco="55")
    response = client.post(
        "/api/health", json={"brinco": "55", "type": "Vermífugo", "date": WHEN}, headers=auth_headers
    )
    assert response.status_code == 201
    assert response.json()["animal_id"] == animal["id"]


def test_herd_wide_record_without_animal(client, auth_headers):
    response = client.post("/api/health", json={"type": "Vacina", "date": WHEN}, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["animal_id"] is None


def test_unknown_brinco(client, auth_headers):
    response = client.post("/api/health", json={"brinco": "nope", "type": "Vacina", "date": WHEN}, headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Animal not found"


def test_other_users_animal_cannot_be_referenced(client, auth_headers):
    animal = _animal(client, auth_headers)
    other = register(client, email="neighbour@example.com")
    response = client.post(
        "/api/health", json={"animal_id": animal["id"], "type": "Vacina", "date": WHEN}, headers=other
    )
    assert response.status_code == 404


def test_list_filter_and_delete(client, auth_headers):
    first = _animal(client, auth_headers, brinco="1")
    second = _animal(client, auth_headers, brinco="2")
    for animal in (first, second):
        client.post(
            "/api/health", json={"animal_id": animal["id"], "type": "Vacina", "date": WHEN}, headers=auth_headers
        )

    assert len(client.get("/api/health", headers=auth_headers).json()) == 2

    filtered = client.get("/api/health", params={"animal_id": first["id"]}, headers=auth_headers).json()
    assert [r["brinco"] for r in filtered] == ["1"]

    record_id = filtered[0]["id"]
    assert client.delete(f"/api/health/{record_id}", headers=auth_headers).json() == {"ok": True}
    assert client.delete(f"/api/health/{record_id}", headers=auth_headers).status_code == 404
    assert len(client.get("/api/health", headers=auth_headers).json()) == 1


def test_deleting_animal_keeps_its_records(client, auth_headers):
    animal = _animal(client, auth_headers)
    client.post("/api/health", json={"animal_id": animal["id"], "type": "Vacina", "date": WHEN}, headers=auth_headers)

    client.delete(f"/api/animals/{animal['id']}", headers=auth_headers)

    records = client.get("/api/health", headers=auth_headers).json()
    assert len(records) == 1
    assert records[0]["brinco"] == "123"


def test_blank_brinco_is_rejected(client, auth_headers):
    response = client.post("/api/health", json={"brinco": "   ", "type": "Vacina", "date": WHEN}, headers=auth_headers)
    assert response.status_code == 422
