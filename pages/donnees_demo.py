import pandas as pd
import streamlit as st

from access_policy import can
from demo_seed import DEMO_COLLECTIONS, clear_collections, seed_demo_data
from firebase_config import initialize_firebase
from ui_helpers import guard, load_managers, require_login, run_action, setup_page, show_flash, show_toast

setup_page("Données de démonstration", "🧪")
user = require_login()
load_managers()
show_flash()

st.markdown("<h1 style='color: #2c3e50;'>🧪 Données de démonstration</h1>", unsafe_allow_html=True)

if not can(user, "demo:reset"):
    st.error("Accès refusé - Droits administrateur requis")
    st.stop()

st.warning(
    "⚠️ La réinitialisation supprime **tous** les documents des collections suivantes avant de générer "
    "un nouveau jeu de données : " + ", ".join(DEMO_COLLECTIONS)
)

col1, col2 = st.columns(2)
seed = col1.number_input("Graine (0 = aléatoire)", min_value=0, value=0, step=1)
confirm = col2.checkbox("Je confirme la suppression des données existantes")

if st.button("🔄 Réinitialiser les données", type="primary", disabled=not confirm) and guard(user, "demo:reset"):
    result = {}

    def _reset():
        db = initialize_firebase()
        with st.spinner("Suppression des données existantes..."):
            result["supprimes"] = clear_collections(db)
        with st.spinner("Génération des données de démonstration..."):
            result["crees"] = seed_demo_data(db, seed=seed or None)

    if run_action(_reset):
        crees = dict(result["crees"])
        echecs = crees.pop("echecs", 0)
        show_toast(f"{sum(crees.values())} documents créés", "success")
        if echecs:
            show_toast(f"{echecs} écriture(s) en échec, voir les journaux", "warning")
        st.dataframe(pd.DataFrame([
            {"Collection": name, "Supprimés": result["supprimes"].get(name, 0), "Créés": crees.get(name, 0)}
            for name in DEMO_COLLECTIONS
        ]), use_container_width=True, hide_index=True)
