"""
Envoi des photos de camions vers Firebase Storage ou Cloudinary
"""

import hashlib
import logging
import re
import time
from typing import Dict, Optional

import requests

from exceptions import ConfigurationError, FleetError, ValidationFailed

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOAD_FOLDER = "camions"
CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"
CLOUDINARY_TIMEOUT = 30


def sanitize_file_name(file_name: str) -> str:
    """Nom de fichier sûr : [a-z0-9_] sur 30 caractères max, extension conservée en minuscules"""
    stem, dot, extension = (file_name or "").rpartition(".")
    if not dot:
        stem, extension = file_name or "", ""
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", stem)
    sanitized = re.sub(r"_{2,}", "_", sanitized).lower()
    if not sanitized or sanitized == "_":
        sanitized = "image"
    sanitized = sanitized[:30].strip("_") or "image"
    return f"{sanitized}.{extension.lower()}" if extension else sanitized


def check_image(content: Optional[bytes], content_type: Optional[str]) -> bytes:
    """Vérifie le type image/* et la taille (10 Mo max)"""
    if content is None:
        raise ValidationFailed("Aucun fichier fourni")
    if not (content_type or "").startswith("image/"):
        raise ValidationFailed("Le fichier doit être une image")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationFailed("Le fichier est trop grand (max 10MB)")
    return content


def upload_to_bucket(bucket, file_name: str, content: bytes, content_type: str) -> Dict:
    """
    Enregistre l'image sous camions/<ms>_<nom> et la rend publique

    Returns:
        {'url', 'fileName'}
    """
    check_image(content, content_type)
    path = f"{UPLOAD_FOLDER}/{int(time.time() * 1000)}_{sanitize_file_name(file_name)}"
    blob = bucket.blob(path)
    blob.upload_from_string(content, content_type=content_type)
    blob.make_public()
    logger.info("Image %s envoyée (%d octets)", path, len(content))
    return {"url": f"https://storage.googleapis.com/{bucket.name}/{path}", "fileName": path}


def cloudinary_signature(params: Dict, api_secret: str) -> str:
    """Signature SHA-1 des paramètres triés, attendue par l'API d'upload Cloudinary"""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


def require_cloudinary(settings):
    if not settings.cloudinary_configured:
        raise ConfigurationError(
            "Cloudinary n'est pas configuré : définissez CLOUDINARY_CLOUD_NAME, "
            "CLOUDINARY_API_KEY et CLOUDINARY_API_SECRET",
            code="CLOUDINARY_NOT_CONFIGURED",
        )


def upload_to_cloudinary(settings, file_name: str, content: bytes, content_type: str) -> Dict:
    """
    Upload signé vers Cloudinary (dossier camions, 1200 px max)

    Returns:
        {'url', 'publicId'}

    Raises:
        ConfigurationError: identifiants CLOUDINARY_* absents
    """
    require_cloudinary(settings)
    check_image(content, content_type)
    params = {
        "folder": UPLOAD_FOLDER,
        "timestamp": int(time.time()),
        "transformation": "c_limit,h_1200,w_1200/q_auto",
    }
    data = {**params, "api_key": settings.cloudinary_api_key,
            "signature": cloudinary_signature(params, settings.cloudinary_api_secret)}
    try:
        r = requests.post(
            CLOUDINARY_UPLOAD_URL.format(cloud_name=settings.cloudinary_cloud_name),
            data=data,
            files={"file": (sanitize_file_name(file_name), content, content_type)},
            timeout=CLOUDINARY_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error("Upload Cloudinary échoué: %s", e)
        raise FleetError("Erreur lors de l'upload", code="CLOUDINARY_UPLOAD_FAILED") from e
    if r.status_code != 200:
        logger.error("Upload Cloudinary refusé (%d): %s", r.status_code, r.text[:200])
        raise FleetError("Erreur lors de l'upload", code="CLOUDINARY_UPLOAD_FAILED")
    result = r.json()
    logger.info("Image Cloudinary %s envoyée", result.get("public_id"))
    return {"url": result.get("secure_url"), "publicId": result.get("public_id")}
