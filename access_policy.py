"""
Politique d'autorisation centralisée

Toute interface qui modifie des données (pages Streamlit, API admin)
consulte authorize() avant d'écrire.
"""

from typing import Dict, Optional

from exceptions import AccessDenied, SelfDeletionError, Unauthenticated

ROLES = ("admin", "comptable", "magasinier", "chauffeur")

ROLE_LABELS = {
    "admin": "Administrateur",
    "comptable": "Comptable",
    "magasinier": "Magasinier",
    "chauffeur": "Chauffeur",
}

# L'admin a tous les droits ; les autres rôles ont une liste explicite.
# Tout rôle connu peut envoyer des images (photos de camions)
ROLE_PERMISSIONS = {
    "admin": {"*"},
    "comptable": {"clients:write", "factures:write", "finance:write", "images:upload"},
    "magasinier": {"stock:write", "images:upload"},
    "chauffeur": {"missions:complete", "images:upload"},
}

ACTION_LABELS = {
    "fleet:write": "modifier la flotte",
    "missions:complete": "terminer une mission",
    "clients:write": "gérer les clients",
    "factures:write": "gérer les factures",
    "finance:write": "gérer les dépenses et recettes",
    "stock:write": "gérer le stock",
    "images:upload": "envoyer des images",
    "settings:write": "modifier les paramètres",
    "demo:reset": "réinitialiser les données",
    "users:read": "consulter les utilisateurs",
    "users:create": "créer des utilisateurs",
    "users:update": "modifier des utilisateurs",
    "users:delete": "supprimer des utilisateurs",
}


def can(user: Optional[Dict], action: str) -> bool:
    """Version booléenne de authorize(), pour masquer les boutons"""
    if not user:
        return False
    allowed = ROLE_PERMISSIONS.get(user.get("role"), set())
    return "*" in allowed or action in allowed


def authorize(user: Optional[Dict], action: str, target_id: Optional[str] = None) -> Dict:
    """
    Vérifie qu'un utilisateur peut effectuer une action

    Args:
        user: {'uid', 'email', 'role'} de l'utilisateur connecté
        action: identifiant d'action ('stock:write', 'users:delete', ...)
        target_id: identifiant visé (utilisé pour bloquer l'auto-suppression)

    Returns:
        L'utilisateur, pour chaînage

    Raises:
        Unauthenticated, AccessDenied, SelfDeletionError
    """
    if not user or not user.get("uid"):
        raise Unauthenticated("Non autorisé. Token manquant.")
    if not can(user, action):
        label = ACTION_LABELS.get(action, action)
        if action.startswith("users:") or action == "settings:write":
            raise AccessDenied("Accès refusé - Droits administrateur requis")
        raise AccessDenied(f"Accès refusé - vous n'avez pas le droit de {label}")
    if action == "users:delete" and target_id and target_id == user.get("uid"):
        raise SelfDeletionError("Vous ne pouvez pas supprimer votre propre compte")
    return user
