import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from dates import format_date, today
from finance import (
    REPORT_PERIODS,
    expenses_by_type,
    format_currency,
    in_period,
    period_report,
    profit_by_camion,
    profit_by_chauffeur,
    receivables,
    report_period_bounds,
    trailing_months,
)
from ui_helpers import export_buttons, kpi_card, load_managers, require_login, setup_page, show_flash

setup_page("Rapports", "📈")
user = require_login()
managers = load_managers()
show_flash()

st.markdown("<h1 style='color: #2c3e50;'>📈 Rapports et analyses</h1>", unsafe_allow_html=True)
st.markdown("<p style='color: #6c757d;'>Analysez la performance de votre flotte</p>", unsafe_allow_html=True)

camions = managers["camions"].get_all()
chauffeurs = managers["chauffeurs"].get_all()
missions = managers["missions"].get_all()
depenses = managers["depenses"].get_all()
recettes = managers["recettes"].get_all()
factures = managers["factures"].get_all()

col1, col2 = st.columns([2, 1])
periode = col1.radio("Période", list(REPORT_PERIODS), horizontal=True, format_func=REPORT_PERIODS.get)
anchor = col2.date_input("Période contenant le", value=today(), format="DD/MM/YYYY")

start, end = report_period_bounds(periode, anchor)
st.caption(f"Du {format_date(start)} au {format_date(end)}")

report = period_report(depenses, recettes, missions, camions, start, end)
creances = receivables(factures)

# -------------------------
# Indicateurs
# -------------------------
col1, col2, col3, col4 = st.columns(4)
col1.markdown(kpi_card("Chiffre d'affaires", format_currency(report["recettes"]),
                       gradient="linear-gradient(135deg, #10b981 0%, #059669 100%)"), unsafe_allow_html=True)
col2.markdown(kpi_card("Total dépenses", format_currency(report["depenses"]),
                       gradient="linear-gradient(135deg, #f87171 0%, #ef4444 100%)"), unsafe_allow_html=True)
col3.markdown(kpi_card("Bénéfice net", format_currency(report["profit"]), f"Marge : {report['marge']:.1f} %"),
              unsafe_allow_html=True)
col4.markdown(kpi_card("Créances clients", format_currency(creances["montant"]),
                       f"{creances['nombre']} facture(s) impayée(s)",
                       gradient="linear-gradient(135deg, #f59e0b 0%, #ea580c 100%)"), unsafe_allow_html=True)

st.markdown("<br>", unsafe_allow_html=True)
col1, col2, col3 = st.columns(3)
col1.metric("🚛 Missions", report["nbMissions"])
col2.metric("⛽ Coût moyen par mission", format_currency(report["coutParMission"]))
col3.metric("📊 Taux d'utilisation", f"{report['tauxUtilisation']:.1f} %")

# -------------------------
# Graphiques
# -------------------------
col_left, col_right = st.columns(2)
with col_left:
    st.markdown("### Évolution financière (6 mois)")
    evolution = trailing_months(depenses, recettes, end)
    fig = go.Figure()
    for column, name, color in (("recettes", "Recettes", "#10b981"), ("depenses", "Dépenses", "#ef4444"),
                                ("profit", "Bénéfice", "#0ea5e9")):
        fig.add_trace(go.Scatter(x=evolution["mois"], y=evolution[column], name=name, mode="lines+markers",
                                 line=dict(color=color, width=2)))
    fig.update_layout(height=350, margin=dict(l=10, r=10, t=30, b=10))
    st.plotly_chart(fig, use_container_width=True)

with col_right:
    st.markdown("### Répartition des dépenses")
    by_type = expenses_by_type(in_period(depenses, start, end))
    if by_type:
        pie = px.pie(names=[t.capitalize() for t in by_type], values=list(by_type.values()), hole=0.4,
                     color_discrete_sequence=["#0ea5e9", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6"])
        pie.update_layout(height=350, margin=dict(l=10, r=10, t=30, b=10))
        st.plotly_chart(pie, use_container_width=True)
    else:
        st.info("Aucune dépense sur la période")

# -------------------------
# Rentabilité
# -------------------------
missions_periode = in_period(missions, start, end, field="dateDebut")
COLUMNS = {"nbMissions": "Missions", "recettes": "Recettes", "couts": "Coûts estimés", "profit": "Profit"}


def _table(df: pd.DataFrame, label: str) -> pd.DataFrame:
    out = df.rename(columns={"nom": label, **COLUMNS})
    for column in ("Recettes", "Coûts estimés", "Profit"):
        out[column] = out[column].map(format_currency)
    return out


col_left, col_right = st.columns(2)
with col_left:
    st.markdown("### 🚛 Top 5 camions par rentabilité")
    top_camions = profit_by_camion(missions_periode, camions)
    if top_camions.empty:
        st.info("Aucun camion")
    else:
        st.dataframe(_table(top_camions, "Camion"), use_container_width=True, hide_index=True)

with col_right:
    st.markdown("### 👤 Top 5 chauffeurs par rentabilité")
    top_chauffeurs = profit_by_chauffeur(missions_periode, chauffeurs)
    if top_chauffeurs.empty:
        st.info("Aucun chauffeur")
    else:
        st.dataframe(_table(top_chauffeurs, "Chauffeur"), use_container_width=True, hide_index=True)

with st.expander("📄 Exporter le rapport"):
    export_buttons(pd.DataFrame([
        {"Indicateur": "Chiffre d'affaires", "Valeur": report["recettes"]},
        {"Indicateur": "Dépenses", "Valeur": report["depenses"]},
        {"Indicateur": "Bénéfice", "Valeur": report["profit"]},
        {"Indicateur": "Marge (%)", "Valeur": round(report["marge"], 1)},
        {"Indicateur": "Missions", "Valeur": report["nbMissions"]},
        {"Indicateur": "Coût moyen par mission", "Valeur": round(report["coutParMission"], 2)},
        {"Indicateur": "Taux d'utilisation (%)", "Valeur": round(report["tauxUtilisation"], 1)},
        {"Indicateur": "Créances clients", "Valeur": creances["montant"]},
    ]), f"rapport_{periode}_{start.isoformat()}")
    export_buttons(profit_by_camion(missions_periode, camions, limit=None).rename(
        columns={"nom": "Camion", **COLUMNS}), f"rentabilite_camions_{start.isoformat()}")
