"""
Page d'accueil : connexion et tableau de bord de la flotte

Lancement : streamlit run fleet_home_page.py
"""

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from alerts import build_alerts, count_by_level
from calendar_events import driver_label, find_by_id, vehicle_label
from dates import format_date, to_date, today
from finance import format_currency, monthly_summary
from schemas import MISSION_STATUS_LABELS
from ui_helpers import kpi_card, load_managers, require_login, setup_page, show_flash

setup_page("Tableau de bord", "🚚")
user = require_login()
managers = load_managers()
show_flash()

st.markdown("<h1 style='color: #2c3e50;'>📊 Tableau de bord</h1>", unsafe_allow_html=True)
st.markdown(
    f"<p style='color: #6c757d; font-size: 16px;'>Bonjour {user.get('name') or user.get('email')}, "
    f"voici l'état de votre flotte au {format_date(today())}</p>",
    unsafe_allow_html=True,
)

stats = managers["statistics"].get_dashboard_stats()

col1, col2, col3, col4 = st.columns(4)
with col1:
    st.markdown(kpi_card("Camions", stats["total_camions"], f"{stats['camions_actifs']} actifs"), unsafe_allow_html=True)
with col2:
    st.markdown(kpi_card("Chauffeurs actifs", stats["chauffeurs_actifs"]), unsafe_allow_html=True)
with col3:
    st.markdown(
        kpi_card("Missions", stats["total_missions"], f"{stats['missions_en_cours']} en cours"),
        unsafe_allow_html=True,
    )
with col4:
    st.markdown(
        kpi_card("Alertes stock", stats["alertes_stock"], "articles sous le seuil",
                 gradient="linear-gradient(135deg, #f59e0b 0%, #ef4444 100%)"),
        unsafe_allow_html=True,
    )

st.markdown("<br>", unsafe_allow_html=True)
col1, col2, col3 = st.columns(3)
col1.metric("💰 Recettes", format_currency(stats["total_recettes"]))
col2.metric("💸 Dépenses", format_currency(stats["total_depenses"]))
col3.metric("📈 Bénéfice", format_currency(stats["profit"]))

# -------------------------
# Évolution mensuelle
# -------------------------
st.markdown("### 📈 Recettes et dépenses de l'année")
summary = monthly_summary(managers["depenses"].get_all(), managers["recettes"].get_all(), today().year)
fig = go.Figure()
fig.add_trace(go.Bar(x=summary["mois"], y=summary["recettes"], name="Recettes", marker_color="#10b981"))
fig.add_trace(go.Bar(x=summary["mois"], y=summary["depenses"], name="Dépenses", marker_color="#ef4444"))
fig.add_trace(go.Scatter(x=summary["mois"], y=summary["profit"], name="Bénéfice", mode="lines+markers",
                         line=dict(color="#0ea5e9", width=3)))
fig.update_layout(barmode="group", height=380, margin=dict(l=10, r=10, t=30, b=10))
st.plotly_chart(fig, use_container_width=True)

# -------------------------
# Missions du jour & alertes
# -------------------------
col_left, col_right = st.columns([3, 2])

camions = managers["camions"].get_all()
chauffeurs = managers["chauffeurs"].get_all()

with col_left:
    st.markdown("### 🚛 Missions du jour")
    missions = [m for m in managers["missions"].get_all() if to_date(m.get("dateDebut")) == today()]
    if not missions:
        st.info("Aucune mission aujourd'hui")
    else:
        st.dataframe(
            pd.DataFrame([
                {
                    "Trajet": f"{m.get('depart', '')} → {m.get('destination', '')}",
                    "Camion": vehicle_label(find_by_id(camions, m.get("camionId"))),
                    "Chauffeur": driver_label(find_by_id(chauffeurs, m.get("chauffeurId"))),
                    "Statut": MISSION_STATUS_LABELS.get(m.get("statut"), m.get("statut")),
                }
                for m in missions
            ]),
            use_container_width=True,
            hide_index=True,
        )

with col_right:
    st.markdown("### 🔔 Alertes")
    alerts = build_alerts(
        managers["assurances"].get_all(),
        managers["visites"].get_all(),
        camions,
        managers["stock"].get_all(),
        managers["factures"].get_all(),
        managers["alert_config"].load(),
    )
    counts = count_by_level(alerts)
    st.markdown(
        f"🔴 **{counts['critique']}** critiques &nbsp; 🟠 **{counts['important']}** importantes "
        f"&nbsp; 🔵 **{counts['info']}** infos"
    )
    for alert in alerts[:5]:
        st.markdown(f"- **{alert['titre']}** : {alert['description']}")
    if len(alerts) > 5:
        st.caption(f"... et {len(alerts) - 5} autre(s), voir la page Alertes")
