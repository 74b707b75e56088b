"""
Calculs financiers : coûts de mission, totaux de facture, numérotation
des factures, synthèses dépenses / recettes et rapports de période
"""

import calendar
import re
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from dates import to_date, today

COUT_PARTS = ("carburant", "peage", "repas", "autre")

MOIS_COURTS = ["Jan", "Fév", "Mar", "Avr", "Mai", "Juin", "Juil", "Août", "Sep", "Oct", "Nov", "Déc"]


def _num(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0  # NaN -> 0


def format_currency(amount) -> str:
    """Formatte un montant en dirhams à la française : 12 345,50 MAD"""
    text = f"{_num(amount):,.2f}".replace(",", " ").replace(".", ",")
    return f"{text} MAD"


# ==========================================
# MISSIONS
# ==========================================

def mission_cost(mission: Dict) -> float:
    """Coût estimé total d'une mission (carburant + péage + repas + autre)"""
    cout = mission.get("coutEstime") or {}
    return sum(_num(cout.get(part)) for part in COUT_PARTS)


def mission_profit(mission: Dict) -> Optional[float]:
    """Recette - coût estimé, ou None si la mission n'a pas de recette"""
    recette = mission.get("recette")
    if not recette:
        return None
    return _num(recette) - mission_cost(mission)


# ==========================================
# FACTURES
# ==========================================

def line_total(ligne: Dict) -> float:
    """Total HT d'une ligne après remise"""
    brut = _num(ligne.get("quantite")) * _num(ligne.get("prixUnitaire"))
    return brut - brut * _num(ligne.get("remise")) / 100


def invoice_totals(lignes: Iterable[Dict]) -> Dict:
    """
    Calcule les totaux d'une facture

    Args:
        lignes: lignes {description, quantite, prixUnitaire, tva, remise}

    Returns:
        {'lignes': lignes avec 'total' recalculé, 'totalHT', 'totalTVA', 'totalTTC'}
    """
    computed = []
    total_ht = 0.0
    total_tva = 0.0
    for ligne in lignes:
        ht = line_total(ligne)
        total_ht += ht
        total_tva += ht * _num(ligne.get("tva")) / 100
        computed.append({**ligne, "total": round(ht, 2)})
    return {
        "lignes": computed,
        "totalHT": round(total_ht, 2),
        "totalTVA": round(total_tva, 2),
        "totalTTC": round(total_ht + total_tva, 2),
    }


def payment_status(total_ttc: float, montant_paye: float, current: str = "brouillon") -> str:
    """Statut déduit d'un paiement ; les autres statuts restent inchangés"""
    if montant_paye <= 0:
        return current
    if montant_paye >= total_ttc:
        return "payee"
    return "partiellement_payee"


_NUMERO_RE = re.compile(r"^FACT-(\d{4})-(\d+)$")


def next_invoice_number(existing: Iterable[str], year: Optional[int] = None) -> str:
    """Prochain numéro FACT-AAAA-NNN de l'année"""
    year = year or today().year
    last = 0
    for numero in existing:
        match = _NUMERO_RE.match(str(numero or "").strip())
        if match and int(match.group(1)) == year:
            last = max(last, int(match.group(2)))
    return f"FACT-{year}-{last + 1:03d}"


def overdue_days(facture: Dict, reference: Optional[date] = None) -> Optional[int]:
    """Jours de retard d'une facture impayée, None si elle n'est pas en retard"""
    echeance = to_date(facture.get("dateEcheance"))
    if echeance is None:
        return None
    unpaid = _num(facture.get("montantRestant")) > 0 or facture.get("statut") == "en_retard"
    reference = reference or today()
    if not unpaid or echeance >= reference:
        return None
    return (reference - echeance).days


# ==========================================
# DÉPENSES / RECETTES
# ==========================================

def finance_totals(depenses: List[Dict], recettes: List[Dict]) -> Dict:
    total_depenses = sum(_num(d.get("montant")) for d in depenses)
    total_recettes = sum(_num(r.get("montant")) for r in recettes)
    return {
        "depenses": total_depenses,
        "recettes": total_recettes,
        "profit": total_recettes - total_depenses,
    }


def _frame(records: List[Dict]) -> pd.DataFrame:
    rows = []
    for r in records:
        d = to_date(r.get("date"))
        if d is not None:
            rows.append({"date": d, "montant": _num(r.get("montant")), "type": r.get("type") or "autre"})
    return pd.DataFrame(rows, columns=["date", "montant", "type"])


def monthly_summary(depenses: List[Dict], recettes: List[Dict], year: Optional[int] = None) -> pd.DataFrame:
    """
    Synthèse mensuelle d'une année

    Returns:
        DataFrame de 12 lignes : mois, depenses, recettes, profit
    """
    year = year or today().year
    out = pd.DataFrame({"mois": MOIS_COURTS, "depenses": 0.0, "recettes": 0.0})
    for column, records in (("depenses", depenses), ("recettes", recettes)):
        df = _frame(records)
        if df.empty:
            continue
        df = df[df["date"].map(lambda d: d.year) == year]
        by_month = df.groupby(df["date"].map(lambda d: d.month))["montant"].sum()
        for month, amount in by_month.items():
            out.loc[month - 1, column] = float(amount)
    out["profit"] = out["recettes"] - out["depenses"]
    return out


def expenses_by_type(depenses: List[Dict]) -> Dict[str, float]:
    df = _frame(depenses)
    if df.empty:
        return {}
    grouped = df.groupby("type")["montant"].sum().sort_values(ascending=False)
    return {str(k): float(v) for k, v in grouped.items()}


# ==========================================
# RAPPORTS
# ==========================================

REPORT_PERIODS = {"month": "Mois", "quarter": "Trimestre", "year": "Année"}


def report_period_bounds(period: str, anchor: Optional[date] = None) -> Tuple[date, date]:
    """
    Premier et dernier jour du mois, du trimestre ou de l'année contenant `anchor`

    Raises:
        ValueError: période inconnue
    """
    anchor = anchor or today()
    if period == "month":
        first_month, months = anchor.month, 1
    elif period == "quarter":
        first_month, months = 3 * ((anchor.month - 1) // 3) + 1, 3
    elif period == "year":
        first_month, months = 1, 12
    else:
        raise ValueError(f"Période inconnue: {period}")
    last_month = first_month + months - 1
    return (
        date(anchor.year, first_month, 1),
        date(anchor.year, last_month, calendar.monthrange(anchor.year, last_month)[1]),
    )


def in_period(records: List[Dict], start: date, end: date, field: str = "date") -> List[Dict]:
    """Enregistrements dont la date `field` tombe dans [start, end]"""
    selected = []
    for r in records:
        d = to_date(r.get(field))
        if d is not None and start <= d <= end:
            selected.append(r)
    return selected


def receivables(factures: List[Dict]) -> Dict:
    """Créances clients : reste à payer des factures ni payées ni annulées"""
    impayees = [
        f for f in factures
        if _num(f.get("montantRestant")) > 0 and f.get("statut") not in ("payee", "annulee")
    ]
    return {
        "montant": sum(_num(f.get("montantRestant")) for f in impayees),
        "nombre": len(impayees),
    }


def period_report(
    depenses: List[Dict],
    recettes: List[Dict],
    missions: List[Dict],
    camions: List[Dict],
    start: date,
    end: date,
) -> Dict:
    """
    Indicateurs d'une période

    Returns:
        recettes, depenses, profit, marge (% des recettes), nbMissions,
        coutParMission (coût estimé moyen) et tauxUtilisation (missions par
        camion actif et par jour, en %)
    """
    totals = finance_totals(in_period(depenses, start, end), in_period(recettes, start, end))
    missions = in_period(missions, start, end, field="dateDebut")
    actifs = len([c for c in camions if c.get("etat") == "actif"])
    jours = (end - start).days + 1
    return {
        **totals,
        "marge": totals["profit"] / totals["recettes"] * 100 if totals["recettes"] > 0 else 0.0,
        "nbMissions": len(missions),
        "coutParMission": sum(mission_cost(m) for m in missions) / len(missions) if missions else 0.0,
        "tauxUtilisation": len(missions) / (actifs * jours) * 100 if actifs else 0.0,
    }


def trailing_months(depenses: List[Dict], recettes: List[Dict], anchor: Optional[date] = None, count: int = 6) -> pd.DataFrame:
    """
    Recettes, dépenses et profit des `count` mois se terminant au mois de `anchor`

    Returns:
        DataFrame : mois ('Mar 2025'), recettes, depenses, profit
    """
    anchor = anchor or today()
    rows = []
    for offset in range(count - 1, -1, -1):
        index = anchor.year * 12 + anchor.month - 1 - offset
        start, end = report_period_bounds("month", date(index // 12, index % 12 + 1, 1))
        totals = finance_totals(in_period(depenses, start, end), in_period(recettes, start, end))
        rows.append({
            "mois": f"{MOIS_COURTS[start.month - 1]} {start.year}",
            "recettes": totals["recettes"],
            "depenses": totals["depenses"],
            "profit": totals["profit"],
        })
    return pd.DataFrame(rows, columns=["mois", "recettes", "depenses", "profit"])


def _profit_by(missions: List[Dict], references: List[Dict], key: str, label, limit: Optional[int]) -> pd.DataFrame:
    rows = []
    for ref in references:
        linked = [m for m in missions if m.get(key) == ref.get("id")]
        recette = sum(_num(m.get("recette")) for m in linked)
        cout = sum(mission_cost(m) for m in linked)
        rows.append({"nom": label(ref), "nbMissions": len(linked), "recettes": recette, "couts": cout,
                     "profit": recette - cout})
    df = pd.DataFrame(rows, columns=["nom", "nbMissions", "recettes", "couts", "profit"])
    df = df.sort_values("profit", ascending=False, kind="stable").reset_index(drop=True)
    return df.head(limit) if limit else df


def profit_by_camion(missions: List[Dict], camions: List[Dict], limit: Optional[int] = 5) -> pd.DataFrame:
    """Rentabilité par camion (recette des missions - coût estimé), meilleurs d'abord"""
    return _profit_by(missions, camions, "camionId", lambda c: c.get("matricule") or c.get("id"), limit)


def profit_by_chauffeur(missions: List[Dict], chauffeurs: List[Dict], limit: Optional[int] = 5) -> pd.DataFrame:
    """Rentabilité par chauffeur, meilleurs d'abord"""
    return _profit_by(
        missions, chauffeurs, "chauffeurId",
        lambda c: f"{c.get('prenom', '')} {c.get('nom', '')}".strip() or c.get("id"), limit,
    )
