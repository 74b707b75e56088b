"""
Configuration Firebase et Backend pour la gestion de flotte
"""

import json
import logging
import os
import threading
import weakref
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Type

import firebase_admin
import requests
import streamlit as st
from firebase_admin import auth, credentials, firestore, storage
from firebase_admin.exceptions import FirebaseError
from pydantic import ValidationError

from alerts import stock_alerts
from dates import now, to_date, today
from exceptions import (
    ConfigurationError,
    FleetError,
    InsufficientStockError,
    RecordNotFound,
    Unauthenticated,
    ValidationFailed,
    auth_error_message,
)
from finance import finance_totals, next_invoice_number, payment_status
from schemas import (
    MISSION_STATUSES,
    AbsenceIn,
    AlertConfig,
    AssuranceIn,
    CamionIn,
    ChauffeurIn,
    ClientIn,
    DepenseIn,
    DocumentModel,
    EntretienIn,
    FactureIn,
    MissionIn,
    MouvementStockIn,
    RecetteIn,
    StockIn,
    UserCreate,
    UserUpdate,
    VisiteTechniqueIn,
    firestore_value,
    validation_message,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_ACCOUNT_FILE = "firebase-service-account.json"
SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
LOGIN_TIMEOUT = 10

# Collections utilisées par le calendrier (abonnements temps réel)
CALENDAR_COLLECTIONS = (
    "missions", "visitesTechniques", "assurances", "entretiens", "absences", "camions", "chauffeurs",
)


# ==========================================
# CONFIGURATION
# ==========================================

def configure_logging(level: Optional[str] = None):
    """Configure le logging racine (niveau LOG_LEVEL, INFO par défaut)"""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _secrets_section(name: str) -> Dict:
    try:
        return dict(st.secrets.get(name, {}))
    except Exception:
        # Pas de .streamlit/secrets.toml (API admin, tests)
        logger.debug("Section de secrets '%s' indisponible", name)
        return {}


@dataclass
class AppSettings:
    """Valeurs de configuration résolues (secrets Streamlit puis variables d'environnement)"""

    firebase: Dict[str, str] = field(default_factory=dict)
    service_account_file: str = DEFAULT_SERVICE_ACCOUNT_FILE
    service_account_info: Optional[Dict] = None
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    timezone: str = "Africa/Casablanca"

    @property
    def api_key(self) -> str:
        return self.firebase.get("apiKey", "")

    @property
    def storage_bucket(self) -> Optional[str]:
        bucket = self.firebase.get("storageBucket")
        if bucket:
            return bucket
        project_id = self.firebase.get("projectId") or (self.service_account_info or {}).get("project_id")
        return f"{project_id}.appspot.com" if project_id else None

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)


def load_settings() -> AppSettings:
    firebase = _secrets_section("firebase") or {
        "apiKey": os.getenv("FIREBASE_API_KEY", ""),
        "authDomain": os.getenv("FIREBASE_AUTH_DOMAIN", ""),
        "projectId": os.getenv("FIREBASE_PROJECT_ID", ""),
        "storageBucket": os.getenv("FIREBASE_STORAGE_BUCKET", ""),
        "messagingSenderId": os.getenv("FIREBASE_MESSAGING_SENDER_ID", ""),
        "appId": os.getenv("FIREBASE_APP_ID", ""),
    }
    return AppSettings(
        firebase=firebase,
        service_account_file=os.getenv("FIREBASE_SERVICE_ACCOUNT_FILE", DEFAULT_SERVICE_ACCOUNT_FILE),
        service_account_info=_secrets_section("firebase_admin") or None,
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME", ""),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY", ""),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET", ""),
        timezone=os.getenv("APP_TIMEZONE", "Africa/Casablanca"),
    )


REQUIRED_SERVICE_ACCOUNT_KEYS = ("type", "project_id", "private_key", "client_email")


def load_service_account(path: str) -> Dict:
    """
    Lit le fichier JSON du service account

    Raises:
        ConfigurationError: fichier absent, illisible ou incomplet
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Fichier service account introuvable: {path}", code="SERVICE_ACCOUNT_MISSING")
    try:
        with open(path, encoding="utf-8") as fh:
            info = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Fichier service account illisible: {e}", code="SERVICE_ACCOUNT_INVALID") from e
    if not isinstance(info, dict):
        raise ConfigurationError("Fichier service account invalide", code="SERVICE_ACCOUNT_INVALID")
    missing = [k for k in REQUIRED_SERVICE_ACCOUNT_KEYS if not info.get(k)]
    if missing:
        raise ConfigurationError(
            f"Champs manquants dans le service account: {', '.join(missing)}", code="SERVICE_ACCOUNT_INVALID"
        )
    return info


# Initialisation Firebase (à faire une seule fois)
def initialize_firebase(settings: Optional[AppSettings] = None):
    if not firebase_admin._apps:
        settings = settings or load_settings()
        info = dict(settings.service_account_info or load_service_account(settings.service_account_file))
        if "private_key" in info:
            info["private_key"] = info["private_key"].replace("\\n", "\n")
        try:
            cred = credentials.Certificate(info)
        except ValueError as e:
            raise ConfigurationError(f"Service account invalide: {e}", code="SERVICE_ACCOUNT_INVALID") from e

        options = {}
        if settings.storage_bucket:
            options["storageBucket"] = settings.storage_bucket
        firebase_admin.initialize_app(cred, options or None)
        logger.info("Firebase initialisé pour le projet %s", info.get("project_id"))
    return firestore.client()


def get_storage_bucket(settings: Optional[AppSettings] = None):
    settings = settings or load_settings()
    initialize_firebase(settings)
    if not settings.storage_bucket:
        raise ConfigurationError("Firebase Storage non configuré: définissez 'firebase.storageBucket'")
    return storage.bucket(settings.storage_bucket)


def _record(doc) -> Dict:
    return {"id": doc.id, **(doc.to_dict() or {})}


# ==========================================
# AUTHENTIFICATION
# ==========================================

def verify_bearer_token(token: Optional[str], db=None, auth_client=None) -> Dict:
    """
    Vérifie un ID token Firebase et charge le profil de l'utilisateur

    Returns:
        {'uid', 'email', 'name', 'role'}

    Raises:
        Unauthenticated: token absent, invalide ou expiré
    """
    if not token:
        raise Unauthenticated("Non autorisé. Token manquant.")
    auth_client = auth_client or auth
    try:
        decoded = auth_client.verify_id_token(token)
    except (ValueError, auth.InvalidIdTokenError, auth.CertificateFetchError) as e:
        logger.info("Token refusé: %s", e)
        raise Unauthenticated("Token invalide ou expiré") from e

    uid = decoded.get("uid")
    db = db or initialize_firebase()
    doc = db.collection("users").document(uid).get()
    profile = (doc.to_dict() or {}) if doc.exists else {}
    return {
        "uid": uid,
        "email": decoded.get("email") or profile.get("email"),
        "name": profile.get("name", ""),
        "role": profile.get("role") or decoded.get("role"),
    }


def authenticate(email: str, password: str, api_key: Optional[str] = None, db=None, auth_client=None) -> Dict:
    """Connexion email / mot de passe via Identity Toolkit puis vérification du token"""
    api_key = api_key or load_settings().api_key
    if not api_key:
        raise ConfigurationError("Configuration Firebase incomplète (apiKey manquante)")
    try:
        r = requests.post(
            SIGN_IN_URL,
            params={"key": api_key},
            json={"email": email.strip(), "password": password, "returnSecureToken": True},
            timeout=LOGIN_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning("Service d'authentification injoignable: %s", e)
        raise FleetError("Service d'authentification injoignable, réessayez", code="AUTH_UNREACHABLE") from e
    if r.status_code != 200:
        raise Unauthenticated("Identifiants invalides")
    user = verify_bearer_token(r.json().get("idToken"), db=db, auth_client=auth_client)
    user["idToken"] = r.json().get("idToken")
    return user


# ==========================================
# ABONNEMENTS TEMPS RÉEL
# ==========================================

def subscribe_collection(db, name: str, callback: Callable[[List[Dict]], None]) -> Callable[[], None]:
    """
    Abonnement on_snapshot à une collection

    Le callback reçoit l'instantané complet à chaque changement.

    Returns:
        La fonction de désabonnement
    """
    watch = db.collection(name).on_snapshot(lambda docs, changes, read_time: callback([_record(d) for d in docs]))
    return watch.unsubscribe


class SnapshotHub:
    """
    Dernier instantané connu de chaque collection surveillée

    Les callbacks on_snapshot arrivent sur des threads Firestore : les
    instantanés sont remplacés sous verrou puis les écouteurs sont notifiés
    avec (nom_collection, enregistrements).
    """

    def __init__(self, db=None):
        self.db = db or initialize_firebase()
        self._lock = threading.Lock()
        self._snapshots: Dict[str, List[Dict]] = {}
        self._unsubscribes: Dict[str, Callable[[], None]] = {}
        self._listeners: List[Callable[[str, List[Dict]], None]] = []

    def watch(self, *names: str):
        for name in names:
            if name in self._unsubscribes:
                continue
            self._unsubscribes[name] = subscribe_collection(self.db, name, self._handler(name))
        return self

    def _handler(self, name: str):
        def on_snapshot(records):
            with self._lock:
                self._snapshots[name] = records
                listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(name, records)
                except Exception:
                    logger.exception("Écouteur en échec pour la collection %s", name)
        return on_snapshot

    def snapshot(self, name: str) -> List[Dict]:
        """Enregistrements courants ([] tant que le premier instantané n'est pas arrivé)"""
        with self._lock:
            return list(self._snapshots.get(name, []))

    def ready(self, name: str) -> bool:
        with self._lock:
            return name in self._snapshots

    def add_listener(self, listener: Callable[[str, List[Dict]], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return remove

    def close(self):
        for name, unsubscribe in list(self._unsubscribes.items()):
            unsubscribe()
            logger.debug("Abonnement %s fermé", name)
        self._unsubscribes.clear()


def _release(hub: SnapshotHub, remove_listener: Callable[[], None]):
    remove_listener()
    hub.close()


class LiveScreen:
    """
    Abonnements d'un écran monté : un callback par collection

    Les abonnements sont retirés par close() au démontage de l'écran, ou
    lorsque l'objet est collecté (fin de la session Streamlit qui le porte).
    """

    def __init__(self, db, names: Sequence[str]):
        self.names = tuple(names)
        self.hub = SnapshotHub(db)
        changed = threading.Event()
        self._changed = changed
        # L'écouteur ne référence pas l'écran, sinon le finaliseur ne passerait jamais
        remove_listener = self.hub.add_listener(lambda name, records: changed.set())
        self.hub.watch(*self.names)
        self._finalizer = weakref.finalize(self, _release, self.hub, remove_listener)

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def consume_changes(self) -> bool:
        """True si un instantané est arrivé depuis le dernier appel"""
        changed = self._changed.is_set()
        self._changed.clear()
        return changed

    def close(self):
        self._finalizer()


def mount_screen(screens: Dict[str, LiveScreen], page: str, names: Sequence[str], db=None) -> LiveScreen:
    """
    Monte les abonnements de `page` et démonte ceux des autres écrans

    Args:
        screens: écrans montés de la session (st.session_state)
        page: identifiant de l'écran courant
        names: collections à surveiller
    """
    unmount_screens(screens, keep=page)
    screen = screens.get(page)
    if screen is None or screen.closed:
        screen = LiveScreen(db or initialize_firebase(), names)
        screens[page] = screen
        logger.info("Écran %s monté (%s)", page, ", ".join(screen.names))
    return screen


def unmount_screens(screens: Dict[str, LiveScreen], keep: Optional[str] = None):
    for page in [p for p in screens if p != keep]:
        screens.pop(page).close()
        logger.info("Écran %s démonté", page)


# ==========================================
# GESTIONNAIRES DE COLLECTIONS
# ==========================================

class CollectionManager:
    """CRUD générique d'une collection Firestore ; les écritures passent par le DTO `model`"""

    collection_name = ""
    model: Optional[Type[DocumentModel]] = None

    def __init__(self, db=None):
        self.db = db or initialize_firebase()
        self.collection = self.db.collection(self.collection_name)

    def _document(self, data) -> Dict:
        if isinstance(data, DocumentModel):
            return data.to_document()
        if self.model is None:
            return firestore_value(dict(data))
        try:
            return self.model.model_validate(data).to_document()
        except ValidationError as e:
            raise ValidationFailed(validation_message(e)) from e

    def get_all(self) -> List[Dict]:
        return [_record(d) for d in self.collection.stream()]

    def get(self, record_id: str) -> Optional[Dict]:
        doc = self.collection.document(record_id).get()
        return _record(doc) if doc.exists else None

    def require(self, record_id: str) -> Dict:
        record = self.get(record_id)
        if record is None:
            raise RecordNotFound(f"Enregistrement introuvable: {self.collection_name}/{record_id}")
        return record

    def create(self, data) -> str:
        """
        Crée un document

        Args:
            data: DTO ou dictionnaire validé par `model`

        Returns:
            ID du document créé
        """
        payload = self._document(data)
        payload["createdAt"] = firestore.SERVER_TIMESTAMP
        _, ref = self.collection.add(payload)
        logger.info("%s/%s créé", self.collection_name, ref.id)
        return ref.id

    def update(self, record_id: str, data):
        """Met à jour un document (DTO complet ou dictionnaire de champs)"""
        payload = data.to_document() if isinstance(data, DocumentModel) else firestore_value(dict(data))
        payload["updatedAt"] = firestore.SERVER_TIMESTAMP
        self.collection.document(record_id).update(payload)

    def delete(self, record_id: str):
        self.collection.document(record_id).delete()
        logger.info("%s/%s supprimé", self.collection_name, record_id)


class CamionManager(CollectionManager):
    collection_name = "camions"
    model = CamionIn


class ChauffeurManager(CollectionManager):
    collection_name = "chauffeurs"
    model = ChauffeurIn

    def get_active(self) -> List[Dict]:
        return [c for c in self.get_all() if c.get("actif", True)]


class ClientManager(CollectionManager):
    collection_name = "clients"
    model = ClientIn


class MissionManager(CollectionManager):
    collection_name = "missions"
    model = MissionIn

    def set_status(self, mission_id: str, statut: str):
        """Change le statut sans contrainte de transition"""
        if statut not in MISSION_STATUSES:
            raise ValidationFailed(f"Statut de mission inconnu: {statut}")
        self.require(mission_id)
        self.update(mission_id, {"statut": statut})

    def complete_mission(self, mission_id: str):
        """Marque une mission comme terminée (statut + date de fin en une écriture)"""
        self.require(mission_id)
        self.update(mission_id, {"statut": "termine", "dateFin": now()})
        logger.info("Mission %s terminée", mission_id)


class VisiteTechniqueManager(CollectionManager):
    collection_name = "visitesTechniques"
    model = VisiteTechniqueIn


class AssuranceManager(CollectionManager):
    collection_name = "assurances"
    model = AssuranceIn


class EntretienManager(CollectionManager):
    collection_name = "entretiens"
    model = EntretienIn


class AbsenceManager(CollectionManager):
    collection_name = "absences"
    model = AbsenceIn


class MouvementStockManager(CollectionManager):
    collection_name = "mouvementsStock"
    model = MouvementStockIn

    def history(self) -> List[Dict]:
        """Mouvements du plus récent au plus ancien (sans date en dernier)"""
        return sorted(self.get_all(), key=lambda m: to_date(m.get("date")) or date.min, reverse=True)


class StockManager(CollectionManager):
    collection_name = "stock"
    model = StockIn

    def low_stock(self) -> List[Dict]:
        return stock_alerts(self.get_all())

    def apply_movement(self, stock_id: str, mouvement, user_id: Optional[str] = None) -> float:
        """
        Applique une entrée ou une sortie de stock

        Returns:
            Nouvelle quantité

        Raises:
            InsufficientStockError: sortie supérieure à la quantité disponible
        """
        if not isinstance(mouvement, MouvementStockIn):
            try:
                mouvement = MouvementStockIn.model_validate(mouvement)
            except ValidationError as e:
                raise ValidationFailed(validation_message(e)) from e
        item = self.require(stock_id)
        current = float(item.get("quantite") or 0)
        if mouvement.type == "sortie":
            if mouvement.quantite > current:
                raise InsufficientStockError(
                    f"Quantité insuffisante: {current:g} disponible(s), {mouvement.quantite:g} demandée(s)"
                )
            new_quantity = current - mouvement.quantite
        else:
            new_quantity = current + mouvement.quantite

        self.update(stock_id, {"quantite": new_quantity})
        entry = {**mouvement.to_document(), "stockId": stock_id, "createdAt": firestore.SERVER_TIMESTAMP}
        if user_id:
            entry["userId"] = user_id
        self.db.collection(MouvementStockManager.collection_name).add(entry)
        logger.info("Stock %s: %s de %g -> %g", stock_id, mouvement.type, mouvement.quantite, new_quantity)
        return new_quantity


class DepenseManager(CollectionManager):
    collection_name = "depenses"
    model = DepenseIn


class RecetteManager(CollectionManager):
    collection_name = "recettes"
    model = RecetteIn


class FactureManager(CollectionManager):
    collection_name = "factures"
    model = FactureIn

    def next_numero(self, year: Optional[int] = None) -> str:
        return next_invoice_number((f.get("numero") for f in self.get_all()), year)

    def register_payment(self, facture_id: str, montant: float) -> Dict:
        """Enregistre un paiement et recalcule le reste dû et le statut"""
        if montant <= 0:
            raise ValidationFailed("Le montant du paiement doit être positif")
        facture = self.require(facture_id)
        total = float(facture.get("totalTTC") or 0)
        paye = float(facture.get("montantPaye") or 0) + montant
        changes = {
            "montantPaye": round(paye, 2),
            "montantRestant": round(max(total - paye, 0), 2),
            "statut": payment_status(total, paye, facture.get("statut", "brouillon")),
        }
        self.update(facture_id, changes)
        return changes


class AlertConfigManager:
    """Configuration des alertes (document configAlertes/default)"""

    def __init__(self, db=None):
        self.db = db or initialize_firebase()
        self.document = self.db.collection("configAlertes").document("default")

    def load(self) -> AlertConfig:
        doc = self.document.get()
        return AlertConfig.from_document(doc.to_dict() if doc.exists else None)

    def save(self, config: AlertConfig):
        self.document.set({**config.to_document(), "updatedAt": firestore.SERVER_TIMESTAMP})


# ==========================================
# UTILISATEURS
# ==========================================

class UserManager(CollectionManager):
    """Comptes Firebase Auth + profils de la collection users"""

    collection_name = "users"

    def __init__(self, db=None, auth_client=None):
        super().__init__(db)
        self.auth = auth_client or auth

    def _auth_call(self, default_message: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (FirebaseError, ValueError) as e:
            logger.warning("Erreur Firebase Auth: %s", e)
            raise ValidationFailed(auth_error_message(e, default_message)) from e

    def list_users(self) -> List[Dict]:
        return self.get_all()

    def create_user(self, data: UserCreate) -> Dict:
        record = self._auth_call(
            "Erreur lors de la création de l'utilisateur",
            self.auth.create_user, email=data.email, password=data.password, display_name=data.name,
        )
        self._auth_call("Erreur lors de la création de l'utilisateur",
                        self.auth.set_custom_user_claims, record.uid, {"role": data.role})
        self.collection.document(record.uid).set({
            "email": data.email,
            "name": data.name,
            "role": data.role,
            "createdAt": firestore.SERVER_TIMESTAMP,
        })
        logger.info("Utilisateur %s créé (%s)", record.uid, data.role)
        return {"id": record.uid, "email": data.email, "name": data.name, "role": data.role}

    def update_user(self, data: UserUpdate):
        message = "Erreur lors de la mise à jour de l'utilisateur"
        changes = data.auth_changes()
        if data.name:
            changes["display_name"] = data.name
        if changes:
            self._auth_call(message, self.auth.update_user, data.userId, **changes)
        if data.role:
            self._auth_call(message, self.auth.set_custom_user_claims, data.userId, {"role": data.role})
        profile = data.profile_changes()
        if profile:
            self.collection.document(data.userId).set(
                {**profile, "updatedAt": firestore.SERVER_TIMESTAMP}, merge=True
            )

    def delete_user(self, user_id: str):
        self._auth_call("Erreur lors de la suppression de l'utilisateur", self.auth.delete_user, user_id)
        self.collection.document(user_id).delete()
        logger.info("Utilisateur %s supprimé", user_id)


# ==========================================
# STATISTIQUES
# ==========================================

class StatisticsManager:
    """Gestionnaire des statistiques"""

    def __init__(self, db=None):
        self.db = db or initialize_firebase()

    def _all(self, name: str) -> List[Dict]:
        return [_record(d) for d in self.db.collection(name).stream()]

    def get_dashboard_stats(self) -> Dict:
        """Récupère les statistiques pour le tableau de bord"""
        camions = self._all("camions")
        chauffeurs = self._all("chauffeurs")
        missions = self._all("missions")
        totals = finance_totals(self._all("depenses"), self._all("recettes"))
        jour = today()

        return {
            "total_camions": len(camions),
            "camions_actifs": len([c for c in camions if c.get("etat") == "actif"]),
            "chauffeurs_actifs": len([c for c in chauffeurs if c.get("actif", True)]),
            "total_missions": len(missions),
            "missions_en_cours": len([m for m in missions if m.get("statut") == "en_cours"]),
            "missions_aujourdhui": len([m for m in missions if to_date(m.get("dateDebut")) == jour]),
            "total_recettes": totals["recettes"],
            "total_depenses": totals["depenses"],
            "profit": totals["profit"],
            "alertes_stock": len(stock_alerts(self._all("stock"))),
        }


# ==========================================
# FONCTION D'AIDE POUR STREAMLIT
# ==========================================

@st.cache_resource
def get_managers():
    """Retourne les gestionnaires initialisés (cachés pour performance)"""
    db = initialize_firebase()
    return {
        "camions": CamionManager(db),
        "chauffeurs": ChauffeurManager(db),
        "clients": ClientManager(db),
        "missions": MissionManager(db),
        "visites": VisiteTechniqueManager(db),
        "assurances": AssuranceManager(db),
        "entretiens": EntretienManager(db),
        "absences": AbsenceManager(db),
        "stock": StockManager(db),
        "mouvements": MouvementStockManager(db),
        "depenses": DepenseManager(db),
        "recettes": RecetteManager(db),
        "factures": FactureManager(db),
        "users": UserManager(db),
        "alert_config": AlertConfigManager(db),
        "statistics": StatisticsManager(db),
    }
