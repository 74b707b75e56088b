from datetime import timedelta

import pandas as pd
import streamlit as st

from access_policy import can
from calendar_events import find_by_id
from dates import format_date, today
from finance import format_currency, invoice_totals, overdue_days
from pdf_generator import create_facture_pdf
from schemas import FACTURE_STATUSES, FactureIn
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

setup_page("Factures", "🧾")
user = require_login()
managers = load_managers()
show_flash()

STATUS_LABELS = {
    "brouillon": "Brouillon",
    "envoyee": "Envoyée",
    "payee": "Payée",
    "partiellement_payee": "Partiellement payée",
    "en_retard": "En retard",
    "annulee": "Annulée",
}
STATUS_COLORS = {
    "brouillon": "#6b7280",
    "envoyee": "#0ea5e9",
    "payee": "#10b981",
    "partiellement_payee": "#f59e0b",
    "en_retard": "#dc2626",
    "annulee": "#374151",
}
LIGNE_COLUMNS = ["description", "quantite", "prixUnitaire", "tva", "remise"]

st.markdown("<h1 style='color: #2c3e50;'>🧾 Factures</h1>", unsafe_allow_html=True)

factures = managers["factures"].get_all()
clients = managers["clients"].get_all()
client_options = options_by_id(clients, lambda c: c.get("nom", "?"))
can_write = can(user, "factures:write")

actives = [f for f in factures if f.get("statut") != "annulee"]
col1, col2, col3, col4 = st.columns(4)
col1.metric("Factures", len(factures))
col2.metric("Total facturé", format_currency(sum(float(f.get("totalTTC") or 0) for f in actives)))
col3.metric("Encaissé", format_currency(sum(float(f.get("montantPaye") or 0) for f in actives)))
col4.metric("En retard", len([f for f in actives if overdue_days(f) is not None]))

tab_liste, tab_nouvelle = st.tabs(["📋 Factures", "➕ Nouvelle facture"])

with tab_liste:
    statuts = st.multiselect("Statut", list(FACTURE_STATUSES), format_func=STATUS_LABELS.get)
    shown = [f for f in factures if not statuts or f.get("statut") in statuts]
    shown.sort(key=lambda f: f.get("numero", ""), reverse=True)
    if not shown:
        st.info("Aucune facture")

    for facture in shown:
        fid = facture["id"]
        client = client_options.get(facture.get("clientId"), "Client inconnu")
        statut = facture.get("statut", "brouillon")
        with st.expander(f"{facture.get('numero', '?')} | {client} | {format_currency(facture.get('totalTTC'))}"):
            st.markdown(status_badge_html(STATUS_LABELS.get(statut, statut), STATUS_COLORS.get(statut, "#6b7280")),
                        unsafe_allow_html=True)
            c1, c2, c3 = st.columns(3)
            c1.write(f"**Émission :** {format_date(facture.get('dateEmission'))}")
            c1.write(f"**Échéance :** {format_date(facture.get('dateEcheance'))}")
            c2.write(f"**Total HT :** {format_currency(facture.get('totalHT'))}")
            c2.write(f"**TVA :** {format_currency(facture.get('totalTVA'))}")
            c3.write(f"**Payé :** {format_currency(facture.get('montantPaye'))}")
            c3.write(f"**Reste :** {format_currency(facture.get('montantRestant'))}")
            retard = overdue_days(facture)
            if retard is not None:
                st.error(f"En retard de {retard} jour(s)")

            st.dataframe(pd.DataFrame(facture.get("lignes") or []), use_container_width=True, hide_index=True)

            st.download_button(
                "📄 Télécharger le PDF",
                create_facture_pdf(facture, find_by_id(clients, facture.get("clientId"))),
                file_name=f"{facture.get('numero', 'facture')}.pdf",
                mime="application/pdf",
                key=f"pdf_{fid}",
            )

            if can_write:
                p1, p2 = st.columns([3, 1])
                montant = p1.number_input("Paiement reçu (MAD)", min_value=0.0, value=0.0, key=f"pay_amount_{fid}")
                if p2.button("💰 Enregistrer", key=f"pay_{fid}", use_container_width=True):
                    if guard(user, "factures:write") and run_action(
                        lambda: managers["factures"].register_payment(fid, montant), "Paiement enregistré"
                    ):
                        st.rerun()
                s1, s2, s3 = st.columns([3, 1, 1])
                new_status = s1.selectbox("Statut", list(FACTURE_STATUSES), key=f"status_{fid}",
                                          index=list(FACTURE_STATUSES).index(statut) if statut in FACTURE_STATUSES else 0,
                                          format_func=STATUS_LABELS.get)
                if s2.button("💾 Appliquer", key=f"apply_{fid}", use_container_width=True):
                    if guard(user, "factures:write") and run_action(
                        lambda: managers["factures"].update(fid, {"statut": new_status}), "Statut mis à jour"
                    ):
                        st.rerun()
                if s3.button("🗑️ Supprimer", key=f"del_{fid}", use_container_width=True):
                    if guard(user, "factures:write") and run_action(
                        lambda: managers["factures"].delete(fid), "Facture supprimée"
                    ):
                        st.rerun()

    if shown:
        export_buttons(pd.DataFrame([
            {
                "Numéro": f.get("numero"),
                "Client": client_options.get(f.get("clientId"), ""),
                "Émission": format_date(f.get("dateEmission")),
                "Échéance": format_date(f.get("dateEcheance")),
                "Statut": STATUS_LABELS.get(f.get("statut"), f.get("statut")),
                "Total TTC": float(f.get("totalTTC") or 0),
                "Reste": float(f.get("montantRestant") or 0),
            }
            for f in shown
        ]), "factures")

with tab_nouvelle:
    if not can_write:
        st.info("Vous n'avez pas le droit de créer des factures")
    elif not client_options:
        st.warning("Ajoutez d'abord un client")
    else:
        numero = managers["factures"].next_numero()
        st.markdown(f"**Numéro :** {numero}")
        c1, c2, c3 = st.columns(3)
        client_id = c1.selectbox("Client", list(client_options), format_func=client_options.get)
        emission = c2.date_input("Date d'émission", value=today())
        echeance = c3.date_input("Échéance", value=today() + timedelta(days=30))

        lignes_df = st.data_editor(
            pd.DataFrame([{"description": "", "quantite": 1.0, "prixUnitaire": 0.0, "tva": 20.0, "remise": 0.0}],
                         columns=LIGNE_COLUMNS),
            num_rows="dynamic",
            use_container_width=True,
            key="facture_lignes",
        )
        lignes = [
            {k: row[k] for k in LIGNE_COLUMNS}
            for row in lignes_df.fillna({"description": ""}).to_dict("records")
            if str(row.get("description") or "").strip()
        ]
        totals = invoice_totals(lignes)
        t1, t2, t3 = st.columns(3)
        t1.metric("Total HT", format_currency(totals["totalHT"]))
        t2.metric("TVA", format_currency(totals["totalTVA"]))
        t3.metric("Total TTC", format_currency(totals["totalTTC"]))

        conditions = st.text_input("Conditions de paiement", "Paiement à 30 jours")
        notes = st.text_area("Notes")
        if st.button("Créer la facture", type="primary") and guard(user, "factures:write"):
            if run_action(lambda: managers["factures"].create(FactureIn(
                numero=numero, clientId=client_id, dateEmission=emission,
                dateEcheance=echeance,
                lignes=lignes, conditionsPaiement=conditions or None, notes=notes or None,
            )), f"Facture {numero} créée"):
                st.session_state.pop("facture_lignes", None)
                st.rerun()
