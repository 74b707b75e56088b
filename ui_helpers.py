"""
Éléments communs des pages Streamlit : connexion, notifications,
garde de permissions, exports et badges
"""

import io
import logging
from typing import Callable, Dict, List, Optional

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from access_policy import ROLE_LABELS, authorize
from exceptions import GENERIC_ERROR_MESSAGE, ConfigurationError, FleetError
from firebase_config import LiveScreen, authenticate, configure_logging, get_managers, mount_screen, unmount_screens
from schemas import validation_message

logger = logging.getLogger(__name__)

# Secondes entre deux vérifications des instantanés reçus
LIVE_REFRESH_SECONDS = 3

BASE_CSS = """
<style>
.kpi-card {
    background: linear-gradient(135deg, #0ea5e9 0%, #6366f1 100%);
    color: white;
    padding: 18px;
    border-radius: 16px;
    box-shadow: 0 8px 24px rgba(0,0,0,0.12);
    height: 100%;
}
.kpi-value { font-size: 30px; font-weight: 700; margin-top: 6px; letter-spacing: -1px; }
.kpi-sub { font-size: 13px; opacity: 0.9; text-transform: uppercase; letter-spacing: 0.5px; }
.status-badge {
    display: inline-block;
    padding: 4px 12px;
    border-radius: 20px;
    font-size: 12px;
    font-weight: 600;
    color: white;
}
.event-badge {
    display: block;
    padding: 2px 6px;
    margin: 2px 0;
    border-radius: 6px;
    font-size: 11px;
    color: white;
    white-space: nowrap;
    overflow: hidden;
    text-overflow: ellipsis;
}
</style>
"""


def setup_page(title: str, icon: str):
    """Configuration commune : doit être le premier appel Streamlit de la page"""
    st.set_page_config(page_title=f"{title} - Gestion de flotte", layout="wide", page_icon=icon)
    configure_logging()
    st.markdown(BASE_CSS, unsafe_allow_html=True)
    # Changement de page : les abonnements des autres écrans sont retirés
    unmount_screens(st.session_state.setdefault("live_screens", {}), keep=title)


# -------------------------
# Système de notifications toast
# -------------------------
def show_toast(message, type="info"):
    """Affiche une notification élégante"""
    if type == "success":
        st.success(f"✅ {message}")
    elif type == "error":
        st.error(f"❌ {message}")
    elif type == "warning":
        st.warning(f"⚠️ {message}")
    else:
        st.info(f"ℹ️ {message}")


def run_action(action: Callable, success_message: Optional[str] = None) -> bool:
    """
    Exécute une opération d'écriture et affiche le résultat

    Returns:
        True si l'opération a réussi
    """
    try:
        action()
    except FleetError as e:
        show_toast(e.message, "error")
        return False
    except ValidationError as e:
        show_toast(validation_message(e), "error")
        return False
    except Exception:
        logger.exception("Opération en échec")
        show_toast(GENERIC_ERROR_MESSAGE, "error")
        return False
    if success_message:
        st.session_state["flash"] = success_message
    return True


def show_flash():
    """Message de succès conservé à travers st.rerun()"""
    message = st.session_state.pop("flash", None)
    if message:
        show_toast(message, "success")


# -------------------------
# Authentification
# -------------------------
def current_user() -> Optional[Dict]:
    return st.session_state.get("user")


def login_form():
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h1 style='text-align: center; color: #0ea5e9;'>🚚</h1>", unsafe_allow_html=True)
        st.markdown("<h2 style='text-align: center;'>Connexion</h2>", unsafe_allow_html=True)
        with st.form("login_form", clear_on_submit=False):
            email = st.text_input("📧 Email", placeholder="vous@exemple.ma")
            password = st.text_input("🔑 Mot de passe", type="password")
            submitted = st.form_submit_button("Se connecter", use_container_width=True, type="primary")
        if submitted:
            if not email or not password:
                show_toast("Veuillez remplir tous les champs", "error")
                return
            try:
                user = authenticate(email, password)
            except FleetError as e:
                show_toast(e.message, "error")
                return
            st.session_state.user = user
            logger.info("Connexion de %s (%s)", user.get("email"), user.get("role"))
            st.rerun()


def require_login() -> Dict:
    """Affiche l'écran de connexion et arrête la page tant qu'aucun utilisateur n'est connecté"""
    user = current_user()
    if not user:
        login_form()
        st.stop()
    with st.sidebar:
        st.markdown(f"**👤 {user.get('name') or user.get('email')}**")
        st.caption(f"🔑 {ROLE_LABELS.get(user.get('role'), user.get('role') or '—')}")
        if st.button("🚪 Déconnexion", use_container_width=True):
            unmount_screens(st.session_state.setdefault("live_screens", {}))
            st.session_state.pop("user", None)
            st.rerun()
    return user


def load_managers() -> Dict:
    try:
        return get_managers()
    except ConfigurationError as e:
        st.error(f"Firebase non configuré : {e.message}")
        st.info(
            "Ajoutez la section [firebase_admin] dans `.streamlit/secrets.toml` "
            "ou le fichier désigné par FIREBASE_SERVICE_ACCOUNT_FILE."
        )
        st.stop()


def guard(user: Dict, action: str) -> bool:
    """Vérifie une permission avant écriture ; affiche le refus"""
    try:
        authorize(user, action)
    except FleetError as e:
        show_toast(e.message, "error")
        return False
    return True


# -------------------------
# Affichage & export
# -------------------------
def kpi_card(label: str, value, sub: str = "", gradient: Optional[str] = None) -> str:
    style = f" style='background: {gradient};'" if gradient else ""
    return (
        f"<div class='kpi-card'{style}><div class='kpi-sub'>{label}</div>"
        f"<div class='kpi-value'>{value}</div><div class='kpi-sub'>{sub}</div></div>"
    )


def status_badge_html(label: str, color: str) -> str:
    return f"<span class='status-badge' style='background:{color};'>{label}</span>"


def to_excel_bytes(df: pd.DataFrame, sheet_name="export"):
    """Convertit un DataFrame en bytes Excel"""
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    return output.getvalue()


def export_buttons(df: pd.DataFrame, filename_prefix: str = "export"):
    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            "📥 CSV",
            df.to_csv(index=False).encode("utf-8"),
            file_name=f"{filename_prefix}.csv",
            mime="text/csv",
            use_container_width=True,
        )
    with col2:
        st.download_button(
            "📊 Excel",
            to_excel_bytes(df, sheet_name=filename_prefix[:31]),
            file_name=f"{filename_prefix}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )


def options_by_id(records: List[Dict], label: Callable[[Dict], str]) -> Dict[str, str]:
    """{id: libellé} pour les selectbox"""
    return {r["id"]: label(r) for r in records}


# -------------------------
# Abonnements temps réel
# -------------------------
def live_collections(page: str, names) -> LiveScreen:
    """Abonnements de l'écran `page` (titre passé à setup_page)"""
    try:
        return mount_screen(st.session_state.setdefault("live_screens", {}), page, names)
    except ConfigurationError as e:
        st.error(f"Firebase non configuré : {e.message}")
        st.stop()


@st.fragment(run_every=LIVE_REFRESH_SECONDS)
def live_refresh(page: str):
    """Relance la page quand un instantané est arrivé depuis le dernier rendu"""
    screen = st.session_state.get("live_screens", {}).get(page)
    if screen is not None and screen.consume_changes():
        st.rerun()
