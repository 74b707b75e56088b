"""
Hiérarchie d'exceptions de l'application de gestion de flotte
et traduction des erreurs Firebase Auth en messages utilisateur
"""

from typing import Optional

from firebase_admin import auth


class FleetError(Exception):
    """Erreur applicative de base, porte le code HTTP associé"""

    status_code = 500

    def __init__(self, message: str, *, code: str = ""):
        self.code = code
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationFailed(FleetError):
    """Données envoyées invalides"""

    status_code = 400


class Unauthenticated(FleetError):
    """Token absent, invalide ou expiré"""

    status_code = 401


class AccessDenied(FleetError):
    """Rôle insuffisant pour l'opération demandée"""

    status_code = 403


class RecordNotFound(FleetError):
    status_code = 404


class InsufficientStockError(ValidationFailed):
    """Sortie de stock supérieure à la quantité disponible"""


class SelfDeletionError(ValidationFailed):
    """Un utilisateur ne peut pas supprimer son propre compte"""


class ConfigurationError(FleetError):
    """Configuration Firebase / service account absente ou illisible"""


GENERIC_ERROR_MESSAGE = "Une erreur inattendue est survenue"

# Codes Firebase Auth connus -> messages localisés
AUTH_ERROR_MESSAGES = {
    "EMAIL_EXISTS": "Cet email est déjà utilisé",
    "DUPLICATE_EMAIL": "Cet email est déjà utilisé",
    "INVALID_EMAIL": "Adresse email invalide",
    "WEAK_PASSWORD": "Le mot de passe doit contenir au moins 6 caractères",
    "USER_NOT_FOUND": "Utilisateur non trouvé",
}


def auth_error_code(exc: Exception) -> Optional[str]:
    """
    Détermine le code d'erreur Firebase Auth d'une exception

    firebase_admin lève des exceptions typées pour les erreurs serveur
    (EmailAlreadyExistsError, UserNotFoundError) et des ValueError pour
    les validations locales (email ou mot de passe invalides).
    """
    if isinstance(exc, auth.EmailAlreadyExistsError):
        return "EMAIL_EXISTS"
    if isinstance(exc, auth.UserNotFoundError):
        return "USER_NOT_FOUND"
    if isinstance(exc, ValueError):
        text = str(exc).lower()
        if "password" in text:
            return "WEAK_PASSWORD"
        if "email" in text:
            return "INVALID_EMAIL"
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.upper() in AUTH_ERROR_MESSAGES:
        return code.upper()
    return None


def auth_error_message(exc: Exception, default: str = GENERIC_ERROR_MESSAGE) -> str:
    """Message utilisateur pour une erreur Firebase Auth (repli générique)"""
    code = auth_error_code(exc)
    return AUTH_ERROR_MESSAGES.get(code, default) if code else default
