def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["service"] == "careflow"


def test_root_uses_success_envelope(client):
    payload = client.get("/").json()
    assert payload["statusCode"] == 200
    assert payload["data"]["status"] == "ok"


def test_missing_actor_headers(client):
    response = client.get("/diagnoses")
    assert response.status_code == 401
    payload = response.json()
    assert payload["statusCode"] == 401
    assert payload["error"] == "Unauthorized"


def test_unknown_role_is_rejected(client):
    response = client.get("/diagnoses", headers={"X-Actor-Id": "someone", "X-Actor-Role": "admin"})
    assert response.status_code == 401


def test_not_found_envelope(client, patient):
    response = client.get("/diagnoses/does-not-exist", headers=patient)
    assert response.status_code == 404
    assert response.json() == {"statusCode": 404, "message": "Diagnosis not found", "error": "NotFound"}


def test_invalid_payload_envelope(client, patient):
    response = client.post("/diagnoses", json={"symptomDescription": ""}, headers=patient)
    assert response.status_code == 422
    payload = response.json()
    assert payload["error"] == "ValidationError"
    assert payload["details"]["errors"]
