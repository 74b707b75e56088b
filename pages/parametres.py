import pandas as pd
import streamlit as st

from access_policy import ROLE_LABELS, ROLES, authorize, can
from schemas import AlertConfig, UserCreate, UserUpdate
from ui_helpers import guard, load_managers, options_by_id, require_login, run_action, setup_page, show_flash

setup_page("Paramètres", "⚙️")
user = require_login()
managers = load_managers()
show_flash()

st.markdown("<h1 style='color: #2c3e50;'>⚙️ Paramètres</h1>", unsafe_allow_html=True)

if not can(user, "settings:write"):
    st.error("Accès refusé - Droits administrateur requis")
    st.stop()

tab_users, tab_alertes = st.tabs(["👥 Utilisateurs", "🔔 Alertes"])

# -------------------------
# Utilisateurs
# -------------------------
with tab_users:
    users = managers["users"].list_users()
    if users:
        st.dataframe(pd.DataFrame([
            {"Nom": u.get("name"), "Email": u.get("email"), "Rôle": ROLE_LABELS.get(u.get("role"), u.get("role"))}
            for u in users
        ]), use_container_width=True, hide_index=True)

    st.markdown("### ➕ Nouvel utilisateur")
    with st.form("new_user", clear_on_submit=True):
        c1, c2 = st.columns(2)
        name = c1.text_input("Nom *")
        email = c2.text_input("Email *")
        password = c1.text_input("Mot de passe *", type="password")
        role = c2.selectbox("Rôle", list(ROLES), format_func=ROLE_LABELS.get)
        submitted = st.form_submit_button("Créer", type="primary")
    if submitted and guard(user, "users:create"):
        if run_action(lambda: managers["users"].create_user(
            UserCreate(email=email, password=password, name=name, role=role)
        ), "Utilisateur créé"):
            st.rerun()

    if users:
        st.markdown("### ✏️ Modifier / supprimer")
        user_options = options_by_id(users, lambda u: f"{u.get('name') or '?'} ({u.get('email')})")
        selected = st.selectbox("Utilisateur", list(user_options), format_func=user_options.get)
        target = next(u for u in users if u["id"] == selected)
        with st.form(f"edit_user_{selected}"):
            c1, c2 = st.columns(2)
            name = c1.text_input("Nom", target.get("name") or "")
            email = c2.text_input("Email", target.get("email") or "")
            roles = list(ROLES)
            role = c1.selectbox("Rôle", roles, format_func=ROLE_LABELS.get,
                                index=roles.index(target["role"]) if target.get("role") in roles else 0)
            password = c2.text_input("Nouveau mot de passe", type="password", help="Laisser vide pour conserver")
            col_save, col_del = st.columns(2)
            save = col_save.form_submit_button("💾 Enregistrer", use_container_width=True)
            remove = col_del.form_submit_button("🗑️ Supprimer", use_container_width=True)
        if save and guard(user, "users:update"):
            if run_action(lambda: managers["users"].update_user(UserUpdate(
                userId=selected, name=name or None, email=email or None, role=role, password=password or None,
            )), "Utilisateur mis à jour"):
                st.rerun()
        if remove:
            def _delete():
                authorize(user, "users:delete", target_id=selected)
                managers["users"].delete_user(selected)
            if run_action(_delete, "Utilisateur supprimé"):
                st.rerun()

# -------------------------
# Seuils d'alerte
# -------------------------
with tab_alertes:
    config = managers["alert_config"].load()
    with st.form("alert_config"):
        st.markdown("**Échéances (jours)**")
        c1, c2, c3 = st.columns(3)
        jours_assurance = c1.number_input("Alerte assurance", min_value=0, value=config.joursAlerteAssurance)
        critique_assurance = c1.number_input("Critique assurance", min_value=0, value=config.joursCritiqueAssurance)
        jours_visite = c2.number_input("Alerte visite", min_value=0, value=config.joursAlerteVisite)
        critique_visite = c2.number_input("Critique visite", min_value=0, value=config.joursCritiqueVisite)
        critique_facture = c3.number_input("Retard facture critique", min_value=0, value=config.joursCritiqueFacture)

        st.markdown("**Stock**")
        s1, s2 = st.columns(2)
        seuil_critique = s1.number_input("Quantité critique", min_value=0.0, value=float(config.seuilStockCritique))
        seuil_important = s2.number_input("Quantité importante", min_value=0.0, value=float(config.seuilStockImportant))

        st.markdown("**Alertes actives**")
        t1, t2, t3 = st.columns(3)
        alerte_assurance = t1.checkbox("Assurances", config.alerteAssurance)
        alerte_visite = t1.checkbox("Visites techniques", config.alerteVisite)
        alerte_maintenance = t2.checkbox("Camions en maintenance", config.alerteMaintenance)
        alerte_entretien = t2.checkbox("Entretiens", config.alerteEntretien)
        alerte_stock = t3.checkbox("Stock", config.alerteStock)
        alerte_facture = t3.checkbox("Factures", config.alerteFacture)
        submitted = st.form_submit_button("💾 Enregistrer", type="primary")
    if submitted and guard(user, "settings:write"):
        if run_action(lambda: managers["alert_config"].save(AlertConfig(
            joursAlerteAssurance=jours_assurance, joursCritiqueAssurance=critique_assurance,
            joursAlerteVisite=jours_visite, joursCritiqueVisite=critique_visite,
            joursCritiqueFacture=critique_facture,
            seuilStockCritique=seuil_critique, seuilStockImportant=seuil_important,
            alerteAssurance=alerte_assurance, alerteVisite=alerte_visite,
            alerteMaintenance=alerte_maintenance, alerteEntretien=alerte_entretien,
            alerteStock=alerte_stock, alerteFacture=alerte_facture,
        )), "Paramètres d'alerte enregistrés"):
            st.rerun()
