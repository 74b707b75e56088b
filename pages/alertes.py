import pandas as pd
import streamlit as st

from alerts import LEVEL_COLORS, LEVELS, build_alerts, count_by_level
from calendar_events import find_by_id, vehicle_label
from dates import format_date
from ui_helpers import export_buttons, kpi_card, load_managers, require_login, setup_page, show_flash

setup_page("Alertes", "🔔")
user = require_login()
managers = load_managers()
show_flash()

LEVEL_LABELS = {"critique": "Critique", "important": "Important", "info": "Info"}
TYPE_LABELS = {
    "assurance": "Assurance",
    "visite": "Visite technique",
    "maintenance": "Maintenance",
    "stock": "Stock",
    "facture": "Facture",
}

st.markdown("<h1 style='color: #2c3e50;'>🔔 Alertes</h1>", unsafe_allow_html=True)

camions = managers["camions"].get_all()
config = managers["alert_config"].load()
alerts = build_alerts(
    managers["assurances"].get_all(),
    managers["visites"].get_all(),
    camions,
    managers["stock"].get_all(),
    managers["factures"].get_all(),
    config,
)
counts = count_by_level(alerts)

cols = st.columns(len(LEVELS))
for col, level in zip(cols, LEVELS):
    col.markdown(
        kpi_card(LEVEL_LABELS[level], counts[level], "alerte(s)",
                 gradient=f"linear-gradient(135deg, {LEVEL_COLORS[level]} 0%, #1f2937 160%)"),
        unsafe_allow_html=True,
    )

st.markdown("<br>", unsafe_allow_html=True)
col1, col2 = st.columns(2)
niveaux = col1.multiselect("Niveau", list(LEVELS), default=list(LEVELS), format_func=LEVEL_LABELS.get)
types = col2.multiselect("Type", list(TYPE_LABELS), default=list(TYPE_LABELS), format_func=TYPE_LABELS.get)

shown = [a for a in alerts if a["niveau"] in niveaux and a["type"] in types]
if not shown:
    st.success("✅ Aucune alerte")

for alert in shown:
    camion = find_by_id(camions, alert.get("camionId")) if alert.get("camionId") else None
    color = LEVEL_COLORS.get(alert["niveau"], "#6b7280")
    st.markdown(
        f"<div style='border-left: 6px solid {color}; background: #f8fafc; padding: 10px 14px; "
        f"border-radius: 8px; margin-bottom: 8px;'>"
        f"<strong>{alert['titre']}</strong><br>"
        f"<span style='color:#475569;'>{alert['description']}</span><br>"
        f"<small style='color:#94a3b8;'>{format_date(alert.get('date'))}"
        f"{' · ' + vehicle_label(camion) if camion else ''}</small></div>",
        unsafe_allow_html=True,
    )

if shown:
    export_buttons(pd.DataFrame([
        {
            "Niveau": LEVEL_LABELS.get(a["niveau"], a["niveau"]),
            "Type": TYPE_LABELS.get(a["type"], a["type"]),
            "Titre": a["titre"],
            "Description": a["description"],
            "Date": format_date(a.get("date")),
        }
        for a in shown
    ]), "alertes")

st.caption(
    f"Seuils : assurance {config.joursAlerteAssurance} j, visite {config.joursAlerteVisite} j, "
    f"facture critique après {config.joursCritiqueFacture} j de retard. Modifiables dans Paramètres."
)
