import pandas as pd
import streamlit as st
from streamlit_folium import st_folium

from access_policy import can
from calendar_events import driver_label, find_by_id, vehicle_label
from dates import format_date, to_date, today
from finance import format_currency, mission_cost, mission_profit
from route_map import MOROCCAN_CITIES, build_mission_map, mission_routes
from schemas import MISSION_STATUS_LABELS, MISSION_STATUSES, CoutEstime, MissionIn
from ui_helpers import export_buttons, guard, load_managers, options_by_id, require_login, run_action, setup_page, show_flash

setup_page("Trajets", "🗺️")
user = require_login()
managers = load_managers()
show_flash()

st.markdown("<h1 style='color: #2c3e50;'>🗺️ Trajets & missions</h1>", unsafe_allow_html=True)

missions = managers["missions"].get_all()
camions = managers["camions"].get_all()
chauffeurs = managers["chauffeurs"].get_all()
can_write = can(user, "fleet:write")
can_complete = can(user, "missions:complete")

camion_options = options_by_id([c for c in camions if c.get("etat", "actif") == "actif"], vehicle_label)
chauffeur_options = options_by_id(managers["chauffeurs"].get_active(), driver_label)

# -------------------------
# Filtres
# -------------------------
col1, col2 = st.columns([2, 1])
statuts = col1.multiselect("Statut", list(MISSION_STATUSES), default=["planifie", "en_cours"],
                           format_func=MISSION_STATUS_LABELS.get)
periode = col2.selectbox("Période", ["Toutes", "Aujourd'hui", "À venir", "Passées"])

filtered = [m for m in missions if not statuts or m.get("statut") in statuts]
if periode == "Aujourd'hui":
    filtered = [m for m in filtered if to_date(m.get("dateDebut")) == today()]
elif periode == "À venir":
    filtered = [m for m in filtered if (to_date(m.get("dateDebut")) or today()) > today()]
elif periode == "Passées":
    filtered = [m for m in filtered if (to_date(m.get("dateDebut")) or today()) < today()]
filtered.sort(key=lambda m: to_date(m.get("dateDebut")) or today(), reverse=True)

tab_liste, tab_carte, tab_nouvelle = st.tabs(["📋 Missions", "🗺️ Carte", "➕ Nouvelle mission"])

with tab_liste:
    if not filtered:
        st.info("Aucune mission pour ces critères")
    for mission in filtered:
        profit = mission_profit(mission)
        titre = (
            f"{format_date(mission.get('dateDebut'))} | {mission.get('depart', '?')} → "
            f"{mission.get('destination', '?')} | {MISSION_STATUS_LABELS.get(mission.get('statut'), '—')}"
        )
        with st.expander(titre):
            c1, c2, c3 = st.columns(3)
            c1.write(f"**Camion :** {vehicle_label(find_by_id(camions, mission.get('camionId')))}")
            c1.write(f"**Chauffeur :** {driver_label(find_by_id(chauffeurs, mission.get('chauffeurId')))}")
            c2.write(f"**Coût estimé :** {format_currency(mission_cost(mission))}")
            c2.write(f"**Recette :** {format_currency(mission.get('recette')) if mission.get('recette') else '—'}")
            c3.write(f"**Marge :** {format_currency(profit) if profit is not None else '—'}")
            c3.write(f"**Fin :** {format_date(mission.get('dateFin'))}")

            mid = mission["id"]
            if can_write:
                s1, s2, s3 = st.columns([2, 1, 1])
                current = mission.get("statut", "planifie")
                new_status = s1.selectbox(
                    "Statut", list(MISSION_STATUSES), key=f"status_{mid}",
                    index=list(MISSION_STATUSES).index(current) if current in MISSION_STATUSES else 0,
                    format_func=MISSION_STATUS_LABELS.get,
                )
                if s2.button("💾 Appliquer", key=f"apply_{mid}", use_container_width=True):
                    if guard(user, "fleet:write") and run_action(
                        lambda: managers["missions"].set_status(mid, new_status), "Statut mis à jour"
                    ):
                        st.rerun()
                if s3.button("🗑️ Supprimer", key=f"del_{mid}", use_container_width=True):
                    if guard(user, "fleet:write") and run_action(
                        lambda: managers["missions"].delete(mid), "Mission supprimée"
                    ):
                        st.rerun()
            if can_complete and mission.get("statut") != "termine":
                if st.button("✅ Marquer comme terminée", key=f"complete_{mid}"):
                    if guard(user, "missions:complete") and run_action(
                        lambda: managers["missions"].complete_mission(mid), "Mission terminée"
                    ):
                        st.rerun()

    if filtered:
        export_buttons(pd.DataFrame([
            {
                "Date": format_date(m.get("dateDebut")),
                "Départ": m.get("depart"),
                "Destination": m.get("destination"),
                "Camion": vehicle_label(find_by_id(camions, m.get("camionId"))),
                "Chauffeur": driver_label(find_by_id(chauffeurs, m.get("chauffeurId"))),
                "Statut": MISSION_STATUS_LABELS.get(m.get("statut"), m.get("statut")),
                "Coût estimé": mission_cost(m),
                "Recette": m.get("recette") or 0,
            }
            for m in filtered
        ]), "missions")

with tab_carte:
    routes = mission_routes(filtered, camions, chauffeurs)
    skipped = len(filtered) - len(routes)
    st.caption("Trait plein : terminée · pointillés : en cours · gris : autres statuts")
    if skipped:
        st.warning(f"{skipped} mission(s) non affichée(s) : ville absente du référentiel")
    st_folium(build_mission_map(routes), width=None, height=500, use_container_width=True)
    if routes:
        st.metric("Distance cumulée (vol d'oiseau)", f"{sum(r['distance_km'] for r in routes):,.0f} km".replace(",", " "))

with tab_nouvelle:
    if not can_write:
        st.info("Vous n'avez pas le droit de créer des missions")
    elif not camion_options or not chauffeur_options:
        st.warning("Ajoutez d'abord un camion actif et un chauffeur actif")
    else:
        villes = sorted(MOROCCAN_CITIES)
        with st.form("new_mission", clear_on_submit=True):
            c1, c2 = st.columns(2)
            depart = c1.selectbox("Départ", villes)
            destination = c2.selectbox("Destination", villes, index=min(1, len(villes) - 1))
            debut = c1.date_input("Date de début", value=today())
            fin = c2.date_input("Date de fin", value=today())
            camion_id = c1.selectbox("Camion", list(camion_options), format_func=camion_options.get)
            chauffeur_id = c2.selectbox("Chauffeur", list(chauffeur_options), format_func=chauffeur_options.get)
            st.markdown("**Coûts estimés (MAD)**")
            k1, k2, k3, k4 = st.columns(4)
            carburant = k1.number_input("Carburant", min_value=0.0, value=0.0)
            peage = k2.number_input("Péage", min_value=0.0, value=0.0)
            repas = k3.number_input("Repas", min_value=0.0, value=0.0)
            autre = k4.number_input("Autre", min_value=0.0, value=0.0)
            recette = st.number_input("Recette prévue (MAD)", min_value=0.0, value=0.0)
            submitted = st.form_submit_button("Créer la mission", type="primary")
        if submitted and guard(user, "fleet:write"):
            if run_action(lambda: managers["missions"].create(MissionIn(
                depart=depart, destination=destination, dateDebut=debut, dateFin=fin,
                camionId=camion_id, chauffeurId=chauffeur_id,
                coutEstime=CoutEstime(carburant=carburant, peage=peage, repas=repas, autre=autre),
                recette=recette or None,
            )), "Mission créée"):
                st.rerun()
