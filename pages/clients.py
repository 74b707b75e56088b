import pandas as pd
import streamlit as st

from access_policy import can
from finance import format_currency
from schemas import ClientIn
from ui_helpers import export_buttons, guard, load_managers, require_login, run_action, setup_page, show_flash

setup_page("Clients", "🏢")
user = require_login()
managers = load_managers()
show_flash()

TYPES = {"entreprise": "Entreprise", "particulier": "Particulier"}

st.markdown("<h1 style='color: #2c3e50;'>🏢 Clients</h1>", unsafe_allow_html=True)

clients = managers["clients"].get_all()
factures = managers["factures"].get_all()
can_write = can(user, "clients:write")


def encours(client_id):
    """Reste à payer cumulé des factures du client"""
    return sum(float(f.get("montantRestant") or 0) for f in factures
               if f.get("clientId") == client_id and f.get("statut") != "annulee")


recherche = st.text_input("🔍 Rechercher", placeholder="Nom, ville, email...")
if recherche:
    terme = recherche.lower()
    clients = [c for c in clients
               if any(terme in str(c.get(k) or "").lower() for k in ("nom", "ville", "email", "telephone"))]

for client in sorted(clients, key=lambda c: c.get("nom", "").lower()):
    with st.expander(f"{client.get('nom', '?')} ({TYPES.get(client.get('type'), '—')})"):
        c1, c2, c3 = st.columns(3)
        c1.write(f"**Email :** {client.get('email') or '—'}")
        c1.write(f"**Téléphone :** {client.get('telephone') or '—'}")
        c2.write(f"**Adresse :** {client.get('adresse') or '—'}")
        c2.write(f"**Ville :** {client.get('ville') or '—'} {client.get('codePostal') or ''}")
        c3.write(f"**N° TVA :** {client.get('numeroTVA') or '—'}")
        c3.write(f"**Encours :** {format_currency(encours(client['id']))}")
        if client.get("notes"):
            st.caption(client["notes"])

        if can_write:
            with st.form(f"edit_client_{client['id']}"):
                e1, e2, e3 = st.columns(3)
                nom = e1.text_input("Nom", client.get("nom", ""))
                email = e2.text_input("Email", client.get("email") or "")
                telephone = e3.text_input("Téléphone", client.get("telephone") or "")
                adresse = e1.text_input("Adresse", client.get("adresse") or "")
                ville = e2.text_input("Ville", client.get("ville") or "")
                tva = e3.text_input("N° TVA", client.get("numeroTVA") or "")
                col_save, col_del = st.columns(2)
                save = col_save.form_submit_button("💾 Enregistrer", use_container_width=True)
                remove = col_del.form_submit_button("🗑️ Supprimer", use_container_width=True)
            if save and guard(user, "clients:write"):
                if run_action(lambda c=client: managers["clients"].update(c["id"], ClientIn(
                    nom=nom, type=c.get("type", "entreprise"), email=email or None, telephone=telephone or None,
                    adresse=adresse or None, ville=ville or None, codePostal=c.get("codePostal"),
                    pays=c.get("pays"), numeroTVA=tva or None, notes=c.get("notes"), solde=c.get("solde", 0),
                )), "Client mis à jour"):
                    st.rerun()
            if remove and guard(user, "clients:write"):
                if run_action(lambda cid=client["id"]: managers["clients"].delete(cid), "Client supprimé"):
                    st.rerun()

if not clients:
    st.info("Aucun client")

if can_write:
    st.markdown("### ➕ Nouveau client")
    with st.form("new_client", clear_on_submit=True):
        c1, c2, c3 = st.columns(3)
        nom = c1.text_input("Nom *")
        kind = c2.selectbox("Type", list(TYPES), format_func=TYPES.get)
        email = c3.text_input("Email")
        telephone = c1.text_input("Téléphone")
        adresse = c2.text_input("Adresse")
        ville = c3.text_input("Ville")
        code_postal = c1.text_input("Code postal")
        pays = c2.text_input("Pays", "Maroc")
        tva = c3.text_input("N° TVA")
        notes = st.text_area("Notes")
        submitted = st.form_submit_button("Ajouter", type="primary")
    if submitted and guard(user, "clients:write"):
        if run_action(lambda: managers["clients"].create(ClientIn(
            nom=nom, type=kind, email=email or None, telephone=telephone or None, adresse=adresse or None,
            ville=ville or None, codePostal=code_postal or None, pays=pays or None,
            numeroTVA=tva or None, notes=notes or None,
        )), "Client ajouté"):
            st.rerun()

if clients:
    export_buttons(pd.DataFrame([
        {
            "Nom": c.get("nom"),
            "Type": TYPES.get(c.get("type"), ""),
            "Email": c.get("email"),
            "Téléphone": c.get("telephone"),
            "Ville": c.get("ville"),
            "Encours (MAD)": encours(c["id"]),
        }
        for c in clients
    ]), "clients")
