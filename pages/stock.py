import pandas as pd
import streamlit as st

from access_policy import can
from alerts import is_low_stock
from dates import format_date, today
from finance import format_currency
from schemas import MouvementStockIn, StockIn
from ui_helpers import export_buttons, guard, load_managers, options_by_id, require_login, run_action, setup_page, show_flash

setup_page("Stock", "📦")
user = require_login()
managers = load_managers()
show_flash()

st.markdown("<h1 style='color: #2c3e50;'>📦 Stock</h1>", unsafe_allow_html=True)

items = managers["stock"].get_all()
can_write = can(user, "stock:write")

low = [i for i in items if is_low_stock(i)]
col1, col2, col3 = st.columns(3)
col1.metric("Articles", len(items))
col2.metric("Sous le seuil", len(low))
col3.metric("Valeur du stock", format_currency(
    sum(float(i.get("quantite") or 0) * float(i.get("prixUnitaire") or 0) for i in items)
))

if low:
    st.warning("⚠️ Articles à réapprovisionner : " + ", ".join(
        f"{i.get('nom')} ({float(i.get('quantite') or 0):g}/{float(i.get('seuilAlerte') or 0):g})" for i in low
    ))

tab_articles, tab_mouvements = st.tabs(["📦 Articles", "🔁 Mouvements"])

with tab_articles:
    if items:
        df = pd.DataFrame([
            {
                "Article": i.get("nom"),
                "Type": i.get("type") or "",
                "Quantité": float(i.get("quantite") or 0),
                "Seuil d'alerte": float(i.get("seuilAlerte") or 0),
                "Prix unitaire": float(i.get("prixUnitaire") or 0),
                "État": "🔴 Bas" if is_low_stock(i) else "🟢 OK",
            }
            for i in sorted(items, key=lambda i: i.get("nom", "").lower())
        ])
        st.dataframe(df, use_container_width=True, hide_index=True)
        export_buttons(df, "stock")
    else:
        st.info("Aucun article en stock")

    if can_write:
        st.markdown("### ➕ Nouvel article")
        with st.form("new_item", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            nom = c1.text_input("Nom *")
            kind = c2.text_input("Type", placeholder="pneu, huile, filtre...")
            quantite = c3.number_input("Quantité initiale", min_value=0.0, value=0.0)
            seuil = c1.number_input("Seuil d'alerte", min_value=0.0, value=10.0)
            prix = c2.number_input("Prix unitaire (MAD)", min_value=0.0, value=0.0)
            submitted = st.form_submit_button("Ajouter", type="primary")
        if submitted and guard(user, "stock:write"):
            if run_action(lambda: managers["stock"].create(StockIn(
                nom=nom, type=kind, quantite=quantite, seuilAlerte=seuil, prixUnitaire=prix,
            )), "Article ajouté"):
                st.rerun()

        if items:
            item_options = options_by_id(items, lambda i: i.get("nom", "?"))
            col1, col2 = st.columns([3, 1])
            selected = col1.selectbox("Supprimer un article", list(item_options), format_func=item_options.get)
            if col2.button("🗑️ Supprimer", use_container_width=True) and guard(user, "stock:write"):
                if run_action(lambda: managers["stock"].delete(selected), "Article supprimé"):
                    st.rerun()

with tab_mouvements:
    item_options = options_by_id(items, lambda i: f"{i.get('nom', '?')} ({float(i.get('quantite') or 0):g})")
    if can_write and item_options:
        with st.form("movement", clear_on_submit=True):
            c1, c2, c3 = st.columns(3)
            stock_id = c1.selectbox("Article", list(item_options), format_func=item_options.get)
            kind = c2.radio("Mouvement", ["entree", "sortie"], horizontal=True,
                            format_func=lambda t: "Entrée" if t == "entree" else "Sortie")
            quantite = c3.number_input("Quantité", min_value=0.0, value=1.0)
            raison = st.text_input("Raison")
            submitted = st.form_submit_button("Enregistrer le mouvement", type="primary")
        if submitted and guard(user, "stock:write"):
            if run_action(lambda: managers["stock"].apply_movement(
                stock_id,
                MouvementStockIn(type=kind, quantite=quantite, date=today(), raison=raison),
                user_id=user.get("uid"),
            ), "Mouvement enregistré"):
                st.rerun()

    mouvements = managers["mouvements"].history()
    if mouvements:
        noms = {i["id"]: i.get("nom") for i in items}
        st.dataframe(pd.DataFrame([
            {
                "Date": format_date(m.get("date")),
                "Article": noms.get(m.get("stockId"), "Article supprimé"),
                "Mouvement": "Entrée" if m.get("type") == "entree" else "Sortie",
                "Quantité": m.get("quantite"),
                "Raison": m.get("raison") or "",
            }
            for m in mouvements
        ]), use_container_width=True, hide_index=True)
    else:
        st.info("Aucun mouvement enregistré")
