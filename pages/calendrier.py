from html import escape

import pandas as pd
import streamlit as st

from access_policy import can
from calendar_events import (
    EVENT_COLORS,
    EVENT_LABELS,
    EVENT_TYPES,
    build_events,
    calendar_view,
    cell_badges,
    events_for_day,
    shift_anchor,
)
from dates import format_date, today
from firebase_config import CALENDAR_COLLECTIONS
from schemas import MISSION_STATUS_LABELS
from ui_helpers import (
    export_buttons,
    guard,
    live_collections,
    live_refresh,
    load_managers,
    require_login,
    run_action,
    setup_page,
    show_flash,
)

setup_page("Calendrier", "📅")
user = require_login()
managers = load_managers()
show_flash()

JOURS = ["Lun", "Mar", "Mer", "Jeu", "Ven", "Sam", "Dim"]
MOIS = ["Janvier", "Février", "Mars", "Avril", "Mai", "Juin", "Juillet",
        "Août", "Septembre", "Octobre", "Novembre", "Décembre"]

if "calendar_anchor" not in st.session_state:
    st.session_state.calendar_anchor = today()

st.markdown("<h1 style='color: #2c3e50;'>📅 Calendrier</h1>", unsafe_allow_html=True)

screen = live_collections("Calendrier", CALENDAR_COLLECTIONS)
hub = screen.hub

pending = [name for name in CALENDAR_COLLECTIONS if not hub.ready(name)]
if pending:
    st.caption(f"⏳ Synchronisation en cours : {', '.join(pending)}")

# -------------------------
# Contrôles
# -------------------------
col1, col2, col3, col4, col5 = st.columns([2, 2, 1, 1, 1])
with col1:
    type_filter = st.selectbox(
        "Type d'événement",
        ["all", *EVENT_TYPES],
        format_func=lambda t: EVENT_LABELS[t],
    )
with col2:
    view_mode = st.radio("Vue", ["month", "week"], horizontal=True,
                         format_func=lambda v: "Mois" if v == "month" else "Semaine")
with col3:
    if st.button("◀", use_container_width=True):
        st.session_state.calendar_anchor = shift_anchor(view_mode, st.session_state.calendar_anchor, -1)
        st.session_state.pop("calendar_selected_date", None)
        st.rerun()
with col4:
    if st.button("Aujourd'hui", use_container_width=True):
        st.session_state.calendar_anchor = today()
        st.session_state.pop("calendar_selected_date", None)
        st.rerun()
with col5:
    if st.button("▶", use_container_width=True):
        st.session_state.calendar_anchor = shift_anchor(view_mode, st.session_state.calendar_anchor, 1)
        st.session_state.pop("calendar_selected_date", None)
        st.rerun()

# Recalcul complet à chaque exécution à partir des instantanés courants
screen.consume_changes()
events = build_events(
    hub.snapshot("missions"),
    hub.snapshot("visitesTechniques"),
    hub.snapshot("assurances"),
    hub.snapshot("entretiens"),
    hub.snapshot("absences"),
    hub.snapshot("camions"),
    hub.snapshot("chauffeurs"),
)
anchor = st.session_state.calendar_anchor
view = calendar_view(events, type_filter, view_mode, anchor)

start, end = view["bounds"]
if view_mode == "month":
    st.markdown(f"### {MOIS[anchor.month - 1]} {anchor.year}")
else:
    st.markdown(f"### Semaine du {format_date(start)} au {format_date(end)}")

st.markdown(
    " ".join(
        f"<span class='status-badge' style='background:{EVENT_COLORS[t]};'>{EVENT_LABELS[t]}</span>"
        for t in EVENT_TYPES
    ),
    unsafe_allow_html=True,
)

# -------------------------
# Grille
# -------------------------
hc = st.columns(7)
for i, h in enumerate(JOURS):
    hc[i].markdown(f"**{h}**")

days = view["days"]
for week_start in range(0, len(days), 7):
    cols = st.columns(7)
    for ci, day in enumerate(days[week_start:week_start + 7]):
        day_events = view["by_day"].get(day.strftime("%Y-%m-%d"), [])
        visible, hidden = cell_badges(day_events, view_mode)
        with cols[ci]:
            in_month = view_mode == "week" or day.month == anchor.month
            label = f"**{day.day}**" if day == today() else str(day.day)
            if st.button(label if in_month else f"·{day.day}", key=f"daybtn_{day.isoformat()}",
                         use_container_width=True):
                st.session_state.calendar_selected_date = day
                st.rerun()
            badges = "".join(
                f"<span class='event-badge' style='background:{e['color']};' title='{escape(e['title'], quote=True)}'>{escape(e['title'])}</span>"
                for e in visible
            )
            if hidden:
                badges += f"<span style='font-size:11px; color:#6b7280;'>+{hidden} autre(s)</span>"
            if badges:
                st.markdown(badges, unsafe_allow_html=True)

# -------------------------
# Détail du jour sélectionné
# -------------------------
selected = st.session_state.get("calendar_selected_date")
day_events = events_for_day(view["all_by_day"], selected)
st.markdown(f"### 📋 Événements du {format_date(selected or today())}")
if not day_events:
    st.info("Aucun événement ce jour")
for event in day_events:
    data = event["data"]
    with st.expander(f"{EVENT_LABELS[event['type']]} : {event['title']}"):
        if event["type"] == "mission":
            st.write(f"**Statut :** {MISSION_STATUS_LABELS.get(data.get('statut'), data.get('statut'))}")
            st.write(f"**Début :** {format_date(data.get('dateDebut'))} | **Fin :** {format_date(data.get('dateFin'))}")
            mission_id = data.get("id")
            if data.get("statut") != "termine" and can(user, "missions:complete"):
                if st.button("✅ Marquer comme terminée", key=f"complete_{mission_id}"):
                    if guard(user, "missions:complete") and run_action(
                        lambda: managers["missions"].complete_mission(mission_id), "Mission terminée"
                    ):
                        st.rerun()
        elif event["type"] == "inspection":
            st.write(f"**Prochaine visite :** {format_date(data.get('prochaineDate'))}")
            st.write(f"**Résultat :** {data.get('resultat', '—')}")
        elif event["type"] == "insurance":
            st.write(f"**Police :** {data.get('numero', '—')} ({data.get('compagnie', '')})")
            st.write(f"**Couverture :** {format_date(data.get('dateDebut'))} → {format_date(data.get('dateFin'))}")
        elif event["type"] == "maintenance":
            st.write(f"**Description :** {data.get('description') or '—'}")
            st.write(f"**Coût :** {data.get('cout', 0)} MAD")
        else:
            st.write(f"**Période :** {format_date(data.get('dateDebut'))} → {format_date(data.get('dateFin'))}")

# -------------------------
# Liste & export
# -------------------------
with st.expander("📄 Liste des événements de la période"):
    df = pd.DataFrame([
        {"Date": format_date(e["date"]), "Type": EVENT_LABELS[e["type"]], "Événement": e["title"]}
        for e in sorted(view["events"], key=lambda e: e["date"])
    ], columns=["Date", "Type", "Événement"])
    st.dataframe(df, use_container_width=True, hide_index=True)
    if not df.empty:
        export_buttons(df, "calendrier")

live_refresh("Calendrier")
