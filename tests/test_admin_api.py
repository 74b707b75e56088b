from __future__ import annotations

from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

import admin_api
from admin_api import app, get_auth_client, get_bucket, get_db, get_settings
from firebase_config import AppSettings


@pytest.fixture
def client(db, fake_auth, bucket) -> Iterator[TestClient]:
    db.seed("users", "admin-uid", {"email": "admin@example.ma", "name": "Admin", "role": "admin"})
    db.seed("users", "chauffeur-uid", {"email": "driver@example.ma", "name": "Driver", "role": "chauffeur"})
    db.seed("users", "magasin-uid", {"email": "stock@example.ma", "name": "Stock", "role": "magasinier"})
    fake_auth.users["admin-uid"] = {"email": "admin@example.ma"}
    fake_auth.users["chauffeur-uid"] = {"email": "driver@example.ma"}
    fake_auth.issue_token("admin-token", "admin-uid", "admin@example.ma")
    fake_auth.issue_token("driver-token", "chauffeur-uid", "driver@example.ma")
    fake_auth.issue_token("stock-token", "magasin-uid", "stock@example.ma")

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_auth_client] = lambda: fake_auth
    app.dependency_overrides[get_bucket] = lambda: bucket
    app.dependency_overrides[get_settings] = lambda: AppSettings()
    # Pas de context manager : le lifespan (initialisation Firebase) ne s'exécute pas
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_token(client: TestClient) -> None:
    response = client.get("/api/users")

    assert response.status_code == 401
    assert response.json() == {"error": "Non autorisé. Token manquant."}


def test_invalid_token(client: TestClient) -> None:
    response = client.get("/api/users", headers=_auth("forged"))

    assert response.status_code == 401
    assert response.json()["error"] == "Token invalide ou expiré"


def test_non_admin_is_forbidden(client: TestClient) -> None:
    response = client.get("/api/users", headers=_auth("driver-token"))

    assert response.status_code == 403
    assert response.json()["error"] == "Accès refusé - Droits administrateur requis"


def test_list_users(client: TestClient) -> None:
    response = client.get("/api/users", headers=_auth("admin-token"))

    assert response.status_code == 200
    assert {u["id"] for u in response.json()["users"]} == {"admin-uid", "chauffeur-uid", "magasin-uid"}


def test_create_user(client: TestClient, db, fake_auth) -> None:
    payload = {"email": "new@example.ma", "password": "secret1", "name": "Nouveau", "role": "comptable"}

    response = client.post("/api/users", json=payload, headers=_auth("admin-token"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    uid = body["user"]["id"]
    assert body["user"] == {"id": uid, "email": "new@example.ma", "name": "Nouveau", "role": "comptable"}
    assert db.data("users")[uid]["role"] == "comptable"
    assert fake_auth.claims[uid] == {"role": "comptable"}


def test_create_user_missing_fields(client: TestClient) -> None:
    response = client.post("/api/users", json={"email": "x@example.ma"}, headers=_auth("admin-token"))

    assert response.status_code == 400
    assert response.json() == {"error": "Email, password, name, and role are required"}


def test_create_user_unknown_role(client: TestClient) -> None:
    payload = {"email": "x@example.ma", "password": "secret1", "name": "X", "role": "pirate"}

    response = client.post("/api/users", json=payload, headers=_auth("admin-token"))

    assert response.status_code == 400
    assert response.json()["error"].startswith("role: ")


def test_create_user_duplicate_email(client: TestClient) -> None:
    payload = {"email": "admin@example.ma", "password": "secret1", "name": "Dup", "role": "admin"}

    response = client.post("/api/users", json=payload, headers=_auth("admin-token"))

    assert response.status_code == 400
    assert response.json()["error"] == "Cet email est déjà utilisé"


def test_update_user(client: TestClient, db, fake_auth) -> None:
    response = client.put(
        "/api/users",
        json={"userId": "chauffeur-uid", "name": "Driver 2", "role": "magasinier"},
        headers=_auth("admin-token"),
    )

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert db.data("users")["chauffeur-uid"]["role"] == "magasinier"
    assert fake_auth.claims["chauffeur-uid"] == {"role": "magasinier"}


def test_update_user_requires_id(client: TestClient) -> None:
    response = client.put("/api/users", json={"name": "X"}, headers=_auth("admin-token"))

    assert response.status_code == 400
    assert response.json() == {"error": "User ID is required"}


def test_delete_user(client: TestClient, db, fake_auth) -> None:
    response = client.delete("/api/users", params={"userId": "chauffeur-uid"}, headers=_auth("admin-token"))

    assert response.status_code == 200
    assert "chauffeur-uid" not in db.data("users")
    assert "chauffeur-uid" not in fake_auth.users


def test_delete_self_is_refused(client: TestClient, db) -> None:
    response = client.delete("/api/users", params={"userId": "admin-uid"}, headers=_auth("admin-token"))

    assert response.status_code == 400
    assert response.json()["error"] == "Vous ne pouvez pas supprimer votre propre compte"
    assert "admin-uid" in db.data("users")


def test_delete_requires_user_id(client: TestClient) -> None:
    response = client.delete("/api/users", headers=_auth("admin-token"))

    assert response.status_code == 400
    assert response.json() == {"error": "User ID is required"}


def test_upload_image(client: TestClient, bucket) -> None:
    response = client.post(
        "/api/upload-image",
        files={"file": ("Camion 1.png", b"\x89PNG", "image/png")},
        headers=_auth("stock-token"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["fileName"].startswith("camions/")
    assert body["fileName"].endswith("_camion_1.png")
    assert body["url"] == f"https://storage.googleapis.com/{bucket.name}/{body['fileName']}"
    assert bucket.blobs[body["fileName"]].public is True


def test_upload_image_token_in_form(client: TestClient, bucket) -> None:
    response = client.post(
        "/api/upload-image",
        data={"token": "admin-token"},
        files={"file": ("a.jpg", b"jpg", "image/jpeg")},
    )

    assert response.status_code == 200
    assert len(bucket.blobs) == 1


def test_upload_rejections(client: TestClient, fake_auth) -> None:
    not_image = client.post(
        "/api/upload-image",
        files={"file": ("doc.pdf", b"%PDF", "application/pdf")},
        headers=_auth("admin-token"),
    )
    assert not_image.status_code == 400
    assert not_image.json()["error"] == "Le fichier doit être une image"

    no_file = client.post("/api/upload-image", data={"token": "admin-token"})
    assert no_file.status_code == 400
    assert no_file.json()["error"] == "Aucun fichier fourni"

    # Compte Auth valide mais sans profil ni rôle
    fake_auth.issue_token("orphan-token", "orphan-uid", "orphan@example.ma")
    forbidden = client.post(
        "/api/upload-image",
        files={"file": ("a.png", b"png", "image/png")},
        headers=_auth("orphan-token"),
    )
    assert forbidden.status_code == 403


def test_every_role_can_upload_images(client: TestClient, bucket) -> None:
    for token in ("admin-token", "stock-token", "driver-token"):
        response = client.post(
            "/api/upload-image",
            files={"file": (f"{token}.png", b"png", "image/png")},
            headers=_auth(token),
        )
        assert response.status_code == 200

    assert len(bucket.blobs) == 3


def test_cloudinary_not_configured(client: TestClient) -> None:
    response = client.post(
        "/api/upload-cloudinary",
        files={"file": ("a.png", b"png", "image/png")},
        headers=_auth("admin-token"),
    )

    assert response.status_code == 500
    assert response.json()["code"] == "CLOUDINARY_NOT_CONFIGURED"


def test_cloudinary_upload(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = AppSettings(cloudinary_cloud_name="demo", cloudinary_api_key="k", cloudinary_api_secret="s")
    app.dependency_overrides[get_settings] = lambda: settings
    seen: dict[str, Any] = {}

    def fake_upload(settings_arg: AppSettings, file_name: str, content: bytes, content_type: str) -> dict[str, str]:
        seen.update(file_name=file_name, content=content)
        return {"url": "https://res.cloudinary.com/demo/a.png", "publicId": "camions/a"}

    monkeypatch.setattr(admin_api, "upload_to_cloudinary", fake_upload)

    response = client.post(
        "/api/upload-cloudinary",
        files={"file": ("a.png", b"png", "image/png")},
        headers=_auth("admin-token"),
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "url": "https://res.cloudinary.com/demo/a.png", "publicId": "camions/a"}
    assert seen == {"file_name": "a.png", "content": b"png"}


def test_unexpected_errors_are_hidden(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(self) -> list:
        raise RuntimeError("database on fire")

    monkeypatch.setattr(admin_api.UserManager, "list_users", explode)

    response = client.get("/api/users", headers=_auth("admin-token"))

    assert response.status_code == 500
    assert response.json() == {"error": "Une erreur inattendue est survenue"}
