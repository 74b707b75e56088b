import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from access_policy import can
from calendar_events import find_by_id, vehicle_label
from dates import format_date, to_date, today
from finance import expenses_by_type, finance_totals, format_currency, monthly_summary
from schemas import DepenseIn, RecetteIn
from ui_helpers import export_buttons, guard, load_managers, options_by_id, require_login, run_action, setup_page, show_flash

setup_page("Dépenses & recettes", "💰")
user = require_login()
managers = load_managers()
show_flash()

TYPES_DEPENSE = ["carburant", "peage", "entretien", "assurance", "salaire", "reparation", "autre"]

st.markdown("<h1 style='color: #2c3e50;'>💰 Dépenses & recettes</h1>", unsafe_allow_html=True)

depenses = managers["depenses"].get_all()
recettes = managers["recettes"].get_all()
camions = managers["camions"].get_all()
clients = managers["clients"].get_all()
can_write = can(user, "finance:write")

annees = sorted({d.year for d in (to_date(r.get("date")) for r in depenses + recettes) if d} | {today().year},
                reverse=True)
annee = st.selectbox("Année", annees)


def of_year(records):
    return [r for r in records if (to_date(r.get("date")) or today()).year == annee]


totals = finance_totals(of_year(depenses), of_year(recettes))
col1, col2, col3 = st.columns(3)
col1.metric("💰 Recettes", format_currency(totals["recettes"]))
col2.metric("💸 Dépenses", format_currency(totals["depenses"]))
col3.metric("📈 Bénéfice", format_currency(totals["profit"]),
            delta=f"{totals['profit'] / totals['recettes'] * 100:.1f} %" if totals["recettes"] else None)

tab_synthese, tab_depenses, tab_recettes = st.tabs(["📊 Synthèse", "💸 Dépenses", "💰 Recettes"])

with tab_synthese:
    summary = monthly_summary(depenses, recettes, annee)
    fig = go.Figure()
    fig.add_trace(go.Bar(x=summary["mois"], y=summary["recettes"], name="Recettes", marker_color="#10b981"))
    fig.add_trace(go.Bar(x=summary["mois"], y=summary["depenses"], name="Dépenses", marker_color="#ef4444"))
    fig.add_trace(go.Scatter(x=summary["mois"], y=summary["profit"], name="Bénéfice", mode="lines+markers",
                             line=dict(color="#0ea5e9", width=3)))
    fig.update_layout(barmode="group", height=400, margin=dict(l=10, r=10, t=30, b=10))
    st.plotly_chart(fig, use_container_width=True)

    by_type = expenses_by_type(of_year(depenses))
    if by_type:
        pie = px.pie(names=list(by_type), values=list(by_type.values()), title="Répartition des dépenses", hole=0.4)
        st.plotly_chart(pie, use_container_width=True)
    export_buttons(summary.rename(columns={
        "mois": "Mois", "depenses": "Dépenses", "recettes": "Recettes", "profit": "Bénéfice",
    }), f"synthese_{annee}")

with tab_depenses:
    rows = sorted(of_year(depenses), key=lambda d: to_date(d.get("date")) or today(), reverse=True)
    if rows:
        df = pd.DataFrame([
            {
                "Date": format_date(d.get("date")),
                "Type": d.get("type"),
                "Montant": float(d.get("montant") or 0),
                "Camion": vehicle_label(find_by_id(camions, d.get("camionId"))) if d.get("camionId") else "",
                "Description": d.get("description") or "",
            }
            for d in rows
        ])
        st.dataframe(df, use_container_width=True, hide_index=True)
        export_buttons(df, f"depenses_{annee}")
    else:
        st.info("Aucune dépense cette année")

    if can_write:
        camion_options = {"": "—", **options_by_id(camions, vehicle_label)}
        with st.form("new_depense", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            kind = c1.selectbox("Type", TYPES_DEPENSE)
            jour = c2.date_input("Date", value=today())
            montant = c3.number_input("Montant (MAD)", min_value=0.0, value=0.0)
            camion_id = c1.selectbox("Camion", list(camion_options), format_func=camion_options.get)
            description = c2.text_input("Description")
            submitted = st.form_submit_button("Ajouter la dépense", type="primary")
        if submitted and guard(user, "finance:write"):
            if run_action(lambda: managers["depenses"].create(DepenseIn(
                type=kind, date=jour, montant=montant, camionId=camion_id or None, description=description,
            )), "Dépense ajoutée"):
                st.rerun()

with tab_recettes:
    rows = sorted(of_year(recettes), key=lambda r: to_date(r.get("date")) or today(), reverse=True)
    client_names = {c["id"]: c.get("nom") for c in clients}
    if rows:
        df = pd.DataFrame([
            {
                "Date": format_date(r.get("date")),
                "Montant": float(r.get("montant") or 0),
                "Client": client_names.get(r.get("clientId"), ""),
                "Description": r.get("description") or "",
            }
            for r in rows
        ])
        st.dataframe(df, use_container_width=True, hide_index=True)
        export_buttons(df, f"recettes_{annee}")
    else:
        st.info("Aucune recette cette année")

    if can_write:
        client_options = {"": "—", **client_names}
        with st.form("new_recette", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            jour = c1.date_input("Date", value=today())
            montant = c2.number_input("Montant (MAD)", min_value=0.0, value=0.0)
            client_id = c3.selectbox("Client", list(client_options), format_func=client_options.get)
            description = st.text_input("Description")
            submitted = st.form_submit_button("Ajouter la recette", type="primary")
        if submitted and guard(user, "finance:write"):
            if run_action(lambda: managers["recettes"].create(RecetteIn(
                date=jour, montant=montant, clientId=client_id or None, description=description,
            )), "Recette ajoutée"):
                st.rerun()
