import pandas as pd
import streamlit as st

from access_policy import can
from calendar_events import ABSENCE_LABELS, driver_label, find_by_id
from dates import format_date, to_date, today
from schemas import AbsenceIn, ChauffeurIn
from ui_helpers import export_buttons, guard, load_managers, options_by_id, require_login, run_action, setup_page, show_flash

setup_page("Chauffeurs", "👨‍✈️")
user = require_login()
managers = load_managers()
show_flash()

CONTRATS = {"cdi": "CDI", "cdd": "CDD", "interim": "Intérim"}
ABSENCE_TYPES = {**ABSENCE_LABELS, "accident": "Accident", "autre": "Autre"}

st.markdown("<h1 style='color: #2c3e50;'>👨‍✈️ Chauffeurs</h1>", unsafe_allow_html=True)

chauffeurs = managers["chauffeurs"].get_all()
absences = managers["absences"].get_all()
can_write = can(user, "fleet:write")


def en_absence(chauffeur_id, jour=None):
    """Vrai si le chauffeur a une absence couvrant le jour donné"""
    jour = jour or today()
    for a in absences:
        if a.get("chauffeurId") != chauffeur_id:
            continue
        debut = to_date(a.get("dateDebut"))
        fin = to_date(a.get("dateFin")) or debut
        if debut and debut <= jour <= fin:
            return True
    return False


tab_liste, tab_absences = st.tabs(["👥 Équipe", "🏖️ Absences"])

with tab_liste:
    col1, col2, col3 = st.columns(3)
    col1.metric("Chauffeurs", len(chauffeurs))
    col2.metric("Actifs", len([c for c in chauffeurs if c.get("actif", True)]))
    col3.metric("Absents aujourd'hui", len([c for c in chauffeurs if en_absence(c["id"])]))

    for chauffeur in sorted(chauffeurs, key=lambda c: (c.get("nom", ""), c.get("prenom", ""))):
        statut = "🟢" if chauffeur.get("actif", True) else "⚪"
        if en_absence(chauffeur["id"]):
            statut = "🏖️"
        with st.expander(f"{statut} {driver_label(chauffeur)}"):
            c1, c2, c3 = st.columns(3)
            c1.write(f"**Téléphone :** {chauffeur.get('telephone') or '—'}")
            c1.write(f"**Email :** {chauffeur.get('email') or '—'}")
            c2.write(f"**Permis :** {chauffeur.get('permis') or '—'}")
            c2.write(f"**Contrat :** {CONTRATS.get(chauffeur.get('typeContrat'), '—')}")
            c3.write(f"**Embauche :** {format_date(chauffeur.get('dateEmbauche'))}")
            c3.write(f"**Solde congés :** {chauffeur.get('soldAnnuelConge', '—')} j")

            if can_write:
                b1, b2 = st.columns(2)
                label = "⏸️ Désactiver" if chauffeur.get("actif", True) else "▶️ Réactiver"
                if b1.button(label, key=f"toggle_{chauffeur['id']}", use_container_width=True):
                    if guard(user, "fleet:write") and run_action(
                        lambda c=chauffeur: managers["chauffeurs"].update(c["id"], {"actif": not c.get("actif", True)}),
                        "Chauffeur mis à jour",
                    ):
                        st.rerun()
                if b2.button("🗑️ Supprimer", key=f"del_{chauffeur['id']}", use_container_width=True):
                    if guard(user, "fleet:write") and run_action(
                        lambda cid=chauffeur["id"]: managers["chauffeurs"].delete(cid), "Chauffeur supprimé"
                    ):
                        st.rerun()

    if can_write:
        st.markdown("### ➕ Nouveau chauffeur")
        with st.form("new_chauffeur", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            prenom = c1.text_input("Prénom *")
            nom = c2.text_input("Nom *")
            telephone = c3.text_input("Téléphone")
            email = c1.text_input("Email")
            permis = c2.text_input("N° permis")
            contrat = c3.selectbox("Contrat", list(CONTRATS), format_func=CONTRATS.get)
            embauche = c1.date_input("Date d'embauche", value=today())
            salaire = c2.number_input("Salaire (MAD)", min_value=0.0, value=0.0)
            solde = c3.number_input("Solde congés annuel", min_value=0, value=18)
            submitted = st.form_submit_button("Ajouter", type="primary")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["chauffeurs"].create(ChauffeurIn(
                prenom=prenom, nom=nom, telephone=telephone or None, email=email or None,
                permis=permis or None, typeContrat=contrat, dateEmbauche=embauche,
                salaire=salaire, soldAnnuelConge=solde,
            )), "Chauffeur ajouté"):
                st.rerun()

    if chauffeurs:
        export_buttons(pd.DataFrame([
            {
                "Prénom": c.get("prenom"),
                "Nom": c.get("nom"),
                "Téléphone": c.get("telephone"),
                "Permis": c.get("permis"),
                "Contrat": CONTRATS.get(c.get("typeContrat"), ""),
                "Actif": "Oui" if c.get("actif", True) else "Non",
            }
            for c in chauffeurs
        ]), "chauffeurs")

with tab_absences:
    if absences:
        st.dataframe(pd.DataFrame([
            {
                "Chauffeur": driver_label(find_by_id(chauffeurs, a.get("chauffeurId"))),
                "Type": ABSENCE_TYPES.get(a.get("type"), a.get("type")),
                "Début": format_date(a.get("dateDebut")),
                "Fin": format_date(a.get("dateFin")),
                "Motif": a.get("description") or "",
            }
            for a in sorted(absences, key=lambda a: to_date(a.get("dateDebut")) or today(), reverse=True)
        ]), use_container_width=True, hide_index=True)
    else:
        st.info("Aucune absence enregistrée")

    chauffeur_options = options_by_id(chauffeurs, driver_label)
    if can_write and absences:
        absence_options = options_by_id(absences, lambda a: (
            f"{driver_label(find_by_id(chauffeurs, a.get('chauffeurId')))} - "
            f"{format_date(a.get('dateDebut'))} au {format_date(a.get('dateFin'))}"
        ))
        col1, col2 = st.columns([3, 1])
        selected = col1.selectbox("Supprimer une absence", list(absence_options), format_func=absence_options.get)
        if col2.button("🗑️ Supprimer", key="del_absence", use_container_width=True):
            if guard(user, "fleet:write") and run_action(
                lambda: managers["absences"].delete(selected), "Absence supprimée"
            ):
                st.rerun()

    if can_write and chauffeur_options:
        st.markdown("### ➕ Nouvelle absence")
        with st.form("new_absence", clear_on_submit=True):
            c1, c2 = st.columns(2)
            chauffeur_id = c1.selectbox("Chauffeur", list(chauffeur_options), format_func=chauffeur_options.get)
            kind = c2.selectbox("Type", list(ABSENCE_TYPES), format_func=ABSENCE_TYPES.get)
            debut = c1.date_input("Début", value=today())
            fin = c2.date_input("Fin", value=today())
            description = st.text_input("Motif")
            submitted = st.form_submit_button("Enregistrer l'absence")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["absences"].create(AbsenceIn(
                chauffeurId=chauffeur_id, type=kind, dateDebut=debut, dateFin=fin, description=description or None,
            )), "Absence enregistrée"):
                st.rerun()
