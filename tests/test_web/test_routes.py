"""
End-to-end tests: route rules from config/security_config.yaml plus the
method security on DocumentService, through FastAPI's TestClient.

Identity: `Authorization: Bearer <user id>` is a full login; a
`remember-me=<user id>` cookie is a remembered (weaker) login.
"""
from __future__ import annotations

ALICE, BOB, CAROL, DAVE = 1, 2, 3, 4


def bearer(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


def remembered(user_id: int) -> dict[str, str]:
    return {"Cookie": f"remember-me={user_id}"}


def _ids(response) -> list[int]:
    return [d["id"] for d in response.json()]


def test_health_is_public(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_anonymous_is_asked_to_authenticate(client):
    response = client.get("/documents")

    assert response.status_code == 401


def test_malformed_bearer_is_bad_request(client):
    assert client.get("/documents", headers={"Authorization": "Bearer abc"}).status_code == 400
    assert client.get("/documents", headers={"Authorization": "Token 1"}).status_code == 400


def test_inactive_user_is_rejected(client):
    assert client.get("/documents", headers=bearer(DAVE)).status_code == 401


def test_me_reports_authentication_state(client):
    full = client.get("/me", headers=bearer(BOB)).json()
    weak = client.get("/me", headers=remembered(BOB)).json()

    assert full == {
        "name": "bob",
        "authorities": ["ROLE_USER"],
        "anonymous": False,
        "remember_me": False,
        "fully_authenticated": True,
    }
    assert weak["remember_me"] is True
    assert weak["fully_authenticated"] is False


def test_admin_users_requires_admin_role(client):
    assert client.get("/admin/users", headers=bearer(ALICE)).status_code == 200
    response = client.get("/admin/users", headers=bearer(BOB))

    assert response.status_code == 403
    assert response.json() == {"detail": "Access is denied"}


def test_admin_users_requires_full_authentication(client):
    assert client.get("/admin/users", headers=remembered(ALICE)).status_code == 403


def test_audit_report_uses_permission_grants(client):
    assert client.get("/admin/audit", headers=bearer(CAROL)).status_code == 200
    assert client.get("/admin/audit", headers=bearer(ALICE)).status_code == 200
    assert client.get("/admin/audit", headers=bearer(BOB)).status_code == 403


def test_document_list_is_post_filtered(client):
    assert _ids(client.get("/documents", headers=bearer(ALICE))) == [1, 2, 3, 4, 5]
    assert _ids(client.get("/documents", headers=bearer(BOB))) == [1, 3, 4, 5]
    assert _ids(client.get("/documents", headers=bearer(CAROL))) == [1, 3, 5]


def test_document_index_filters_map_entries(client):
    response = client.get("/documents/index", headers=bearer(BOB))

    assert response.status_code == 200
    assert sorted(response.json()) == ["1", "3", "4", "5"]


def test_get_document_is_post_authorized(client):
    assert client.get("/documents/4", headers=bearer(BOB)).json()["title"] == "Bob's diary"

    response = client.get("/documents/2", headers=bearer(BOB))

    assert response.status_code == 403
    assert response.json() == {"detail": "Access is denied"}


def test_missing_document_is_not_found(client):
    assert client.get("/documents/999", headers=bearer(ALICE)).status_code == 404


def test_user_documents_self_or_staff(client):
    assert _ids(client.get("/users/bob/documents", headers=bearer(BOB))) == [3, 4]
    assert client.get("/users/alice/documents", headers=bearer(BOB)).status_code == 403
    # Staff may list bob's documents, but only see the ones they may read.
    assert _ids(client.get("/users/bob/documents", headers=bearer(CAROL))) == [3]
    # Admin inherits staff through the role hierarchy.
    assert _ids(client.get("/users/bob/documents", headers=bearer(ALICE))) == [3, 4]


def test_create_document_requires_full_login(client):
    created = client.post("/documents", json={"title": "Draft"}, headers=bearer(BOB))

    assert created.status_code == 201
    assert created.json()["owner"] == "bob"
    assert client.post("/documents", json={"title": "Draft"}, headers=remembered(BOB)).status_code == 403


def test_rename_checks_permission_by_id(client):
    renamed = client.patch("/documents/3", json={"title": "Bob's better notes"}, headers=bearer(BOB))

    assert renamed.status_code == 200
    assert renamed.json()["title"] == "Bob's better notes"
    assert client.patch("/documents/1", json={"title": "Mine now"}, headers=bearer(BOB)).status_code == 403
    assert client.patch("/documents/1", json={"title": "Handbook v2"}, headers=bearer(ALICE)).status_code == 200


def test_delete_route_uses_bean_and_path_variable(client):
    assert client.delete("/documents/1", headers=bearer(BOB)).status_code == 403
    assert client.delete("/documents/3", headers=bearer(BOB)).status_code == 204
    assert client.delete("/documents/5", headers=bearer(ALICE)).status_code == 204

    assert _ids(client.get("/documents", headers=bearer(ALICE))) == [1, 2, 4]


def test_bulk_delete_pre_filters_ids(client):
    response = client.post("/documents/delete", json={"ids": [1, 3, 4]}, headers=bearer(BOB))

    assert response.status_code == 200
    assert response.json() == {"ids": [3, 4]}
    assert _ids(client.get("/documents", headers=bearer(ALICE))) == [1, 2, 5]


def test_internal_routes_are_restricted_by_address(client):
    # TestClient connects from host "testclient", which is in neither range.
    assert client.get("/internal/ping", headers=bearer(ALICE)).status_code == 403
    assert client.get("/internal/ping").status_code == 401
