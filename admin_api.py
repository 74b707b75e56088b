"""
API d'administration (FastAPI) : gestion des utilisateurs et envoi d'images

Lancement : uvicorn admin_api:app --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import Body, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth
from pydantic import ValidationError

from access_policy import authorize
from exceptions import GENERIC_ERROR_MESSAGE, FleetError, ValidationFailed
from firebase_config import (
    AppSettings,
    UserManager,
    configure_logging,
    get_storage_bucket,
    initialize_firebase,
    load_settings,
    verify_bearer_token,
)
from image_storage import check_image, require_cloudinary, upload_to_bucket, upload_to_cloudinary
from schemas import UserCreate, UserUpdate, validation_message

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise Firebase au démarrage ; une configuration invalide arrête le serveur"""
    configure_logging()
    initialize_firebase(load_settings())
    logger.info("API d'administration prête")
    yield


app = FastAPI(title="Gestion de flotte - API d'administration", lifespan=lifespan)

bearer_scheme = HTTPBearer(auto_error=False)


# ==========================================
# GESTION DES ERREURS
# ==========================================

@app.exception_handler(FleetError)
async def fleet_error_handler(request: Request, exc: FleetError):
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s refusé (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    content = {"error": exc.message}
    if exc.code:
        content["code"] = exc.code
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Requête invalide", "details": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Erreur inattendue sur %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR_MESSAGE})


# ==========================================
# DÉPENDANCES
# ==========================================

def get_settings() -> AppSettings:
    return load_settings()


def get_db():
    return initialize_firebase()


def get_auth_client():
    return auth


def get_bucket(settings: AppSettings = Depends(get_settings)):
    return get_storage_bucket(settings)


def get_user_manager(db=Depends(get_db), auth_client=Depends(get_auth_client)) -> UserManager:
    return UserManager(db, auth_client)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db=Depends(get_db),
    auth_client=Depends(get_auth_client),
) -> Dict:
    token = credentials.credentials if credentials else None
    return verify_bearer_token(token, db=db, auth_client=auth_client)


def get_upload_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token: Optional[str] = Form(None),
    db=Depends(get_db),
    auth_client=Depends(get_auth_client),
) -> Dict:
    """Token dans l'en-tête Authorization, ou à défaut dans le champ de formulaire 'token'"""
    bearer = credentials.credentials if credentials else token
    return authorize(verify_bearer_token(bearer, db=db, auth_client=auth_client), "images:upload")


def permission_required(action: str):
    """Dépendance vérifiant une permission de la politique d'accès"""
    def checker(user: Dict = Depends(get_current_user)) -> Dict:
        return authorize(user, action)
    return checker


# ==========================================
# UTILISATEURS
# ==========================================

REQUIRED_USER_FIELDS = ("email", "password", "name", "role")


@app.get("/api/users")
def list_users(
    user: Dict = Depends(permission_required("users:read")),
    users: UserManager = Depends(get_user_manager),
):
    return {"users": users.list_users()}


@app.post("/api/users")
def create_user(
    payload: Dict = Body(...),
    user: Dict = Depends(permission_required("users:create")),
    users: UserManager = Depends(get_user_manager),
):
    if any(not payload.get(f) for f in REQUIRED_USER_FIELDS):
        raise ValidationFailed("Email, password, name, and role are required")
    try:
        data = UserCreate.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailed(validation_message(e)) from e
    created = users.create_user(data)
    logger.info("Utilisateur %s créé par %s", created["id"], user["uid"])
    return {"success": True, "user": created}


@app.put("/api/users")
def update_user(
    payload: Dict = Body(...),
    user: Dict = Depends(permission_required("users:update")),
    users: UserManager = Depends(get_user_manager),
):
    if not payload.get("userId"):
        raise ValidationFailed("User ID is required")
    try:
        data = UserUpdate.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailed(validation_message(e)) from e
    users.update_user(data)
    return {"success": True}


@app.delete("/api/users")
def delete_user(
    userId: Optional[str] = Query(None),
    user: Dict = Depends(get_current_user),
    users: UserManager = Depends(get_user_manager),
):
    authorize(user, "users:delete", target_id=userId)
    if not userId:
        raise ValidationFailed("User ID is required")
    users.delete_user(userId)
    logger.info("Utilisateur %s supprimé par %s", userId, user["uid"])
    return {"success": True}


# ==========================================
# IMAGES
# ==========================================

async def read_upload(file: Optional[UploadFile]) -> bytes:
    if file is None:
        raise ValidationFailed("Aucun fichier fourni")
    return check_image(await file.read(), file.content_type)


@app.post("/api/upload-image")
async def upload_image(
    file: Optional[UploadFile] = File(None),
    user: Dict = Depends(get_upload_user),
    bucket=Depends(get_bucket),
):
    content = await read_upload(file)
    stored = upload_to_bucket(bucket, file.filename, content, file.content_type)
    logger.info("Image %s envoyée par %s", stored["fileName"], user["uid"])
    return {"success": True, **stored}


@app.post("/api/upload-cloudinary")
async def upload_cloudinary(
    file: Optional[UploadFile] = File(None),
    user: Dict = Depends(get_upload_user),
    settings: AppSettings = Depends(get_settings),
):
    require_cloudinary(settings)
    content = await read_upload(file)
    stored = upload_to_cloudinary(settings, file.filename, content, file.content_type)
    logger.info("Image Cloudinary %s envoyée par %s", stored["publicId"], user["uid"])
    return {"success": True, **stored}


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(
        "admin_api:app",
        host=os.getenv("ADMIN_API_HOST", "0.0.0.0"),
        port=int(os.getenv("ADMIN_API_PORT", "8000")),
    )
