"""Blueprint tests for /api/requests."""

from fulfillment.models import RequestStatus

from conftest import actor_headers


def _create(client, actor="creator", items=None, title="Test Request"):
    return client.post(
        "/api/requests",
        json={"title": title, "items": items if items is not None else [{"product_id": 1, "warehouse_id": 1, "quantity": 1}]},
        headers=actor_headers(actor),
    )


def test_missing_actor_is_unauthenticated(client, directory):
    response = client.get("/api/requests")

    assert response.status_code == 401
    assert response.get_json()["changed"] is False


def test_unknown_actor_is_unauthenticated(client, directory):
    response = client.get("/api/requests", headers=actor_headers("ghost"))

    assert response.status_code == 401


def test_create_and_fetch_request(client, directory):
    response = _create(client)

    assert response.status_code == 201
    body = response.get_json()
    assert body["status"] == RequestStatus.DRAFT
    assert len(body["items"]) == 1
    assert [h["new_status"] for h in body["history"]] == [RequestStatus.DRAFT]

    fetched = client.get(f"/api/requests/{body['id']}", headers=actor_headers("reader"))
    assert fetched.status_code == 200
    assert fetched.get_json()["title"] == "Test Request"


def test_create_validation_error_payload(client, directory):
    response = _create(client, items=[])

    assert response.status_code == 400
    body = response.get_json()
    assert body["code"] == "validation_error"
    assert body["changed"] is False


def test_create_without_access_is_forbidden(client, directory):
    response = _create(client, actor="u1")

    assert response.status_code == 403
    assert response.get_json()["code"] == "access_denied"


def test_full_lifecycle_over_http(client, directory):
    request_id = _create(client).get_json()["id"]
    headers = actor_headers("creator")

    for action, status in [
        ("submit", RequestStatus.SUBMITTED),
        ("approve", RequestStatus.APPROVED),
        ("received", RequestStatus.ITEMS_RECEIVED),
        ("installed", RequestStatus.ITEMS_INSTALLED),
        ("complete", RequestStatus.COMPLETED),
    ]:
        response = client.post(f"/api/requests/{request_id}/{action}", json={}, headers=headers)
        assert response.status_code == 200, response.get_json()
        assert response.get_json()["status"] == status

    history = client.get(f"/api/requests/{request_id}/history", headers=headers).get_json()
    assert len(history) == 6

    txns = client.get(f"/api/requests/{request_id}/transactions", headers=headers).get_json()
    assert [(t["type"], t["quantity"], t["request_id"]) for t in txns] == [("Income", 1, request_id)]


def test_invalid_transition_is_conflict(client, directory):
    request_id = _create(client).get_json()["id"]

    response = client.post(f"/api/requests/{request_id}/approve", headers=actor_headers("creator"))

    assert response.status_code == 409
    body = response.get_json()
    assert body["code"] == "invalid_transition"
    assert body["details"] == {"current_status": "Draft", "target_status": "Approved"}


def test_reject_with_comment(client, directory):
    request_id = _create(client).get_json()["id"]
    headers = actor_headers("creator")
    client.post(f"/api/requests/{request_id}/submit", headers=headers)

    response = client.post(
        f"/api/requests/{request_id}/reject",
        json={"comment": "out of budget"},
        headers=actor_headers("manager"),
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == RequestStatus.REJECTED
    assert body["history"][-1]["comment"] == "out of budget"


def test_item_endpoints(client, directory):
    request_id = _create(client).get_json()["id"]
    headers = actor_headers("creator")

    added = client.post(
        f"/api/requests/{request_id}/items",
        json={"product_id": 2, "warehouse_id": 1, "quantity": 3, "unit_price": "1.25"},
        headers=headers,
    )
    assert added.status_code == 201
    item = added.get_json()
    assert item["total_price"] == "3.75"

    removed = client.delete(f"/api/requests/{request_id}/items/{item['id']}", headers=headers)
    assert removed.status_code == 200

    remaining = client.get(f"/api/requests/{request_id}", headers=headers).get_json()["items"]
    last = client.delete(f"/api/requests/{request_id}/items/{remaining[0]['id']}", headers=headers)
    assert last.status_code == 409
    assert last.get_json()["code"] == "invalid_operation"


def test_unknown_request_is_not_found(client, directory):
    response = client.get("/api/requests/404", headers=actor_headers("creator"))

    assert response.status_code == 404
    assert response.get_json()["code"] == "not_found"


def test_list_requests_with_paging(client, directory):
    for title in ("First request", "Second request"):
        _create(client, title=title)

    response = client.get("/api/requests?page_size=1", headers=actor_headers("creator"))

    assert response.status_code == 200
    body = response.get_json()
    assert body["total"] == 2
    assert [r["title"] for r in body["items"]] == ["Second request"]

    bad = client.get("/api/requests?status=Unknown", headers=actor_headers("creator"))
    assert bad.status_code == 400


def test_sink_failures_still_return_success(client, directory, failing_sinks):
    response = _create(client)

    assert response.status_code == 201
