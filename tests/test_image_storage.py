from __future__ import annotations

import hashlib
from typing import Any

import pytest
import requests

import image_storage
from exceptions import ConfigurationError, FleetError, ValidationFailed
from firebase_config import AppSettings
from image_storage import (
    MAX_UPLOAD_BYTES,
    check_image,
    cloudinary_signature,
    sanitize_file_name,
    upload_to_bucket,
    upload_to_cloudinary,
)


class _Response:
    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self) -> dict[str, Any]:
        return self._payload


def _cloudinary_settings() -> AppSettings:
    return AppSettings(cloudinary_cloud_name="demo", cloudinary_api_key="key", cloudinary_api_secret="secret")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Photo Camion (1).JPG", "photo_camion_1.jpg"),
        ("..png", "image.png"),
        ("sans-extension", "sans_extension"),
        ("a" * 50 + ".webp", "a" * 30 + ".webp"),
    ],
)
def test_sanitize_file_name(name: str, expected: str) -> None:
    assert sanitize_file_name(name) == expected


def test_check_image_rejections() -> None:
    with pytest.raises(ValidationFailed, match="Aucun fichier fourni"):
        check_image(None, "image/png")
    with pytest.raises(ValidationFailed, match="doit être une image"):
        check_image(b"data", "application/pdf")
    with pytest.raises(ValidationFailed, match="trop grand"):
        check_image(b"x" * (MAX_UPLOAD_BYTES + 1), "image/png")
    assert check_image(b"x", "image/png") == b"x"


def test_upload_to_bucket(bucket, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("image_storage.time.time", lambda: 1700000000.5)

    result = upload_to_bucket(bucket, "Mon Camion.PNG", b"png-bytes", "image/png")

    path = "camions/1700000000500_mon_camion.png"
    assert result == {"url": f"https://storage.googleapis.com/flotte.appspot.com/{path}", "fileName": path}
    assert bucket.blobs[path].content == b"png-bytes"
    assert bucket.blobs[path].public is True


def test_cloudinary_signature_sorts_parameters() -> None:
    expected = hashlib.sha1(b"folder=camions&timestamp=10secret").hexdigest()
    assert cloudinary_signature({"timestamp": 10, "folder": "camions"}, "secret") == expected


def test_cloudinary_requires_configuration() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        upload_to_cloudinary(AppSettings(), "a.png", b"x", "image/png")

    assert exc_info.value.code == "CLOUDINARY_NOT_CONFIGURED"


def test_cloudinary_upload(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    def fake_post(url: str, **kwargs: Any) -> _Response:
        calls.append({"url": url, **kwargs})
        return _Response(200, {"secure_url": "https://res.cloudinary.com/demo/camions/x.png", "public_id": "camions/x"})

    monkeypatch.setattr(image_storage.requests, "post", fake_post)

    result = upload_to_cloudinary(_cloudinary_settings(), "x.png", b"x", "image/png")

    assert result == {"url": "https://res.cloudinary.com/demo/camions/x.png", "publicId": "camions/x"}
    assert calls[0]["url"] == "https://api.cloudinary.com/v1_1/demo/image/upload"
    assert calls[0]["data"]["api_key"] == "key"
    assert calls[0]["data"]["folder"] == "camions"
    assert "signature" in calls[0]["data"]


def test_cloudinary_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(image_storage.requests, "post", lambda url, **kw: _Response(400, {"error": "bad"}))
    with pytest.raises(FleetError) as exc_info:
        upload_to_cloudinary(_cloudinary_settings(), "x.png", b"x", "image/png")
    assert exc_info.value.code == "CLOUDINARY_UPLOAD_FAILED"

    def unreachable(url: str, **kwargs: Any) -> _Response:
        raise requests.ConnectionError("down")

    monkeypatch.setattr(image_storage.requests, "post", unreachable)
    with pytest.raises(FleetError, match="Erreur lors de l'upload"):
        upload_to_cloudinary(_cloudinary_settings(), "x.png", b"x", "image/png")
