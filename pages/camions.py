from datetime import timedelta

import pandas as pd
import streamlit as st

from access_policy import can
from calendar_events import find_by_id, vehicle_label
from dates import format_date, today
from firebase_config import get_storage_bucket
from image_storage import upload_to_bucket
from schemas import AssuranceIn, CamionIn, EntretienIn, VisiteTechniqueIn
from ui_helpers import (
    export_buttons,
    guard,
    load_managers,
    options_by_id,
    require_login,
    run_action,
    setup_page,
    show_flash,
    status_badge_html,
)

setup_page("Camions", "🚛")
user = require_login()
managers = load_managers()
show_flash()

ETAT_LABELS = {"actif": "Actif", "en_maintenance": "En maintenance", "hors_service": "Hors service"}
ETAT_COLORS = {"actif": "#10b981", "en_maintenance": "#f59e0b", "hors_service": "#ef4444"}

st.markdown("<h1 style='color: #2c3e50;'>🚛 Camions</h1>", unsafe_allow_html=True)

camions = managers["camions"].get_all()
camion_options = options_by_id(camions, lambda c: f"{c.get('matricule', '?')} - {c.get('marque', '')} {c.get('modele', '')}")
can_write = can(user, "fleet:write")

tab_camions, tab_visites, tab_assurances, tab_entretiens = st.tabs(
    ["🚛 Flotte", "🔧 Visites techniques", "🛡️ Assurances", "🛠️ Entretiens"]
)

# -------------------------
# Flotte
# -------------------------
with tab_camions:
    if not camions:
        st.info("Aucun camion enregistré")
    for camion in sorted(camions, key=lambda c: c.get("matricule", "")):
        with st.expander(f"{camion.get('matricule', '?')} - {camion.get('marque', '')} {camion.get('modele', '')}"):
            col_img, col_info = st.columns([1, 2])
            with col_img:
                if camion.get("imageUrl"):
                    st.image(camion["imageUrl"], use_container_width=True)
                else:
                    st.caption("Pas de photo")
            with col_info:
                etat = camion.get("etat", "actif")
                st.markdown(status_badge_html(ETAT_LABELS.get(etat, etat), ETAT_COLORS.get(etat, "#6b7280")),
                            unsafe_allow_html=True)
                st.write(f"**Kilométrage :** {camion.get('kilometrageActuel', 0):,} km".replace(",", " "))
                st.write(f"**Date d'achat :** {format_date(camion.get('dateAchat'))}")

            if can_write:
                with st.form(f"edit_camion_{camion['id']}"):
                    c1, c2, c3 = st.columns(3)
                    matricule = c1.text_input("Matricule", camion.get("matricule", ""))
                    marque = c2.text_input("Marque", camion.get("marque", ""))
                    modele = c3.text_input("Modèle", camion.get("modele", ""))
                    etats = list(ETAT_LABELS)
                    etat = c1.selectbox("État", etats, index=etats.index(camion.get("etat", "actif")),
                                        format_func=ETAT_LABELS.get)
                    km = c2.number_input("Kilométrage", min_value=0.0, value=float(camion.get("kilometrageActuel") or 0))
                    photo = c3.file_uploader("Photo", type=["png", "jpg", "jpeg", "webp"])
                    col_save, col_del = st.columns(2)
                    save = col_save.form_submit_button("💾 Enregistrer", use_container_width=True)
                    remove = col_del.form_submit_button("🗑️ Supprimer", use_container_width=True)

                if save and guard(user, "fleet:write"):
                    def _save(camion=camion):
                        image_url = camion.get("imageUrl")
                        if photo is not None:
                            image_url = upload_to_bucket(get_storage_bucket(), photo.name, photo.getvalue(), photo.type)["url"]
                        managers["camions"].update(camion["id"], CamionIn(
                            matricule=matricule, marque=marque, modele=modele, etat=etat,
                            kilometrageActuel=km, dateAchat=camion.get("dateAchat"),
                            couleur=camion.get("couleur"), imageUrl=image_url,
                        ))
                    if run_action(_save, "Camion mis à jour"):
                        st.rerun()
                if remove and guard(user, "fleet:write"):
                    if run_action(lambda cid=camion["id"]: managers["camions"].delete(cid), "Camion supprimé"):
                        st.rerun()

    if can_write:
        st.markdown("### ➕ Nouveau camion")
        with st.form("new_camion", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            matricule = c1.text_input("Matricule *")
            marque = c2.text_input("Marque")
            modele = c3.text_input("Modèle")
            date_achat = c1.date_input("Date d'achat", value=today())
            km = c2.number_input("Kilométrage", min_value=0.0, value=0.0)
            couleur = c3.color_picker("Couleur", "#0ea5e9")
            submitted = st.form_submit_button("Ajouter", type="primary")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["camions"].create({
                "matricule": matricule, "marque": marque, "modele": modele,
                "dateAchat": date_achat, "kilometrageActuel": km, "couleur": couleur,
            }), "Camion ajouté"):
                st.rerun()

    if camions:
        df = pd.DataFrame([
            {
                "Matricule": c.get("matricule"),
                "Marque": c.get("marque"),
                "Modèle": c.get("modele"),
                "État": ETAT_LABELS.get(c.get("etat"), c.get("etat")),
                "Kilométrage": c.get("kilometrageActuel", 0),
            }
            for c in camions
        ])
        export_buttons(df, "camions")


def _records_table(records, columns):
    if not records:
        st.info("Aucun enregistrement")
        return
    st.dataframe(pd.DataFrame([columns(r) for r in records]), use_container_width=True, hide_index=True)


def _delete_selector(records, manager, label, key):
    if not records or not can_write:
        return
    options = options_by_id(records, label)
    col1, col2 = st.columns([3, 1])
    selected = col1.selectbox("Supprimer", list(options), format_func=options.get, key=f"del_{key}")
    if col2.button("🗑️ Supprimer", key=f"del_btn_{key}", use_container_width=True) and guard(user, "fleet:write"):
        if run_action(lambda: manager.delete(selected), "Enregistrement supprimé"):
            st.rerun()


# -------------------------
# Visites techniques
# -------------------------
with tab_visites:
    visites = managers["visites"].get_all()
    _records_table(visites, lambda v: {
        "Camion": vehicle_label(find_by_id(camions, v.get("camionId"))),
        "Date": format_date(v.get("date")),
        "Prochaine visite": format_date(v.get("prochaineDate")),
        "Résultat": v.get("resultat", "—"),
    })
    _delete_selector(visites, managers["visites"],
                     lambda v: f"{vehicle_label(find_by_id(camions, v.get('camionId')))} - {format_date(v.get('date'))}",
                     "visite")
    if can_write and camion_options:
        with st.form("new_visite", clear_on_submit=True):
            c1, c2, c3, c4 = st.columns(4)
            camion_id = c1.selectbox("Camion", list(camion_options), format_func=camion_options.get)
            date_visite = c2.date_input("Date", value=today())
            prochaine = c3.date_input("Prochaine visite", value=today() + timedelta(days=365))
            resultat = c4.selectbox("Résultat", ["valide", "non_valide"])
            submitted = st.form_submit_button("Ajouter la visite")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["visites"].create(VisiteTechniqueIn(
                camionId=camion_id, date=date_visite, prochaineDate=prochaine, resultat=resultat,
            )), "Visite ajoutée"):
                st.rerun()

# -------------------------
# Assurances
# -------------------------
with tab_assurances:
    assurances = managers["assurances"].get_all()
    _records_table(assurances, lambda a: {
        "Camion": vehicle_label(find_by_id(camions, a.get("camionId"))),
        "N° police": a.get("numero"),
        "Compagnie": a.get("compagnie"),
        "Début": format_date(a.get("dateDebut")),
        "Expiration": format_date(a.get("dateFin")),
        "Montant": a.get("montant", 0),
    })
    _delete_selector(assurances, managers["assurances"], lambda a: f"{a.get('numero', '?')}", "assurance")
    if can_write and camion_options:
        with st.form("new_assurance", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            camion_id = c1.selectbox("Camion", list(camion_options), format_func=camion_options.get)
            numero = c2.text_input("N° police *")
            compagnie = c3.text_input("Compagnie")
            debut = c1.date_input("Début", value=today())
            fin = c2.date_input("Expiration", value=today() + timedelta(days=365))
            montant = c3.number_input("Montant (MAD)", min_value=0.0, value=0.0)
            submitted = st.form_submit_button("Ajouter l'assurance")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["assurances"].create(AssuranceIn(
                camionId=camion_id, numero=numero, compagnie=compagnie,
                dateDebut=debut, dateFin=fin, montant=montant,
            )), "Assurance ajoutée"):
                st.rerun()

# -------------------------
# Entretiens
# -------------------------
with tab_entretiens:
    entretiens = managers["entretiens"].get_all()
    _records_table(entretiens, lambda e: {
        "Camion": vehicle_label(find_by_id(camions, e.get("camionId"))),
        "Type": e.get("type"),
        "Date": format_date(e.get("date")),
        "Description": e.get("description", ""),
        "Coût": e.get("cout", 0),
    })
    _delete_selector(entretiens, managers["entretiens"],
                     lambda e: f"{e.get('type', '?')} - {format_date(e.get('date'))}", "entretien")
    if can_write and camion_options:
        with st.form("new_entretien", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            camion_id = c1.selectbox("Camion", list(camion_options), format_func=camion_options.get)
            kind = c2.selectbox("Type", ["vidange", "reparation", "autre"])
            date_entretien = c3.date_input("Date", value=today())
            description = st.text_input("Description")
            cout = st.number_input("Coût (MAD)", min_value=0.0, value=0.0)
            submitted = st.form_submit_button("Ajouter l'entretien")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["entretiens"].create(EntretienIn(
                camionId=camion_id, type=kind, date=date_entretien, description=description, cout=cout,
            )), "Entretien ajouté"):
                st.rerun()
