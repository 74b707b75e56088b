"""
Alertes : stock bas, échéances d'assurance et de visite technique,
camions en maintenance et factures en retard
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from dates import to_date, today
from finance import format_currency, overdue_days
from schemas import AlertConfig

logger = logging.getLogger(__name__)

LEVELS = ("critique", "important", "info")
LEVEL_PRIORITY = {level: i for i, level in enumerate(LEVELS)}

LEVEL_COLORS = {
    "critique": "#dc2626",
    "important": "#f59e0b",
    "info": "#3b82f6",
}


def _qty(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def is_low_stock(item: Dict) -> bool:
    return _qty(item.get("quantite")) <= _qty(item.get("seuilAlerte"))


def stock_alerts(items: List[Dict]) -> List[Dict]:
    """Articles dont la quantité est inférieure ou égale au seuil d'alerte"""
    return [item for item in items if is_low_stock(item)]


def _plural(n: int) -> str:
    return "s" if n > 1 else ""


def _alert(alert_id, alert_type, level, title, description, day, camion_id=None) -> Dict:
    return {
        "id": alert_id,
        "type": alert_type,
        "niveau": level,
        "titre": title,
        "description": description,
        "date": day,
        "camionId": camion_id,
    }


def build_alerts(
    assurances: List[Dict],
    visites: List[Dict],
    camions: List[Dict],
    stock: List[Dict],
    factures: List[Dict],
    config: Optional[AlertConfig] = None,
    reference: Optional[date] = None,
) -> List[Dict]:
    """
    Construit la liste des alertes du centre d'alertes

    Args:
        config: seuils et interrupteurs (valeurs par défaut si None)
        reference: jour de référence (aujourd'hui par défaut)

    Returns:
        Alertes triées par niveau (critique, important, info) puis par date
    """
    config = config or AlertConfig()
    reference = reference or today()
    alerts = []

    if config.alerteAssurance:
        for assurance in assurances:
            fin = to_date(assurance.get("dateFin"))
            if fin is None:
                continue
            remaining = (fin - reference).days
            numero = assurance.get("numero", "")
            if 0 <= remaining <= config.joursAlerteAssurance:
                level = "critique" if remaining <= config.joursCritiqueAssurance else "important"
                alerts.append(_alert(
                    f"assurance-{assurance.get('id')}", "assurance", level,
                    "Assurance expire bientôt",
                    f"L'assurance {numero} expire dans {remaining} jour{_plural(remaining)}",
                    fin, assurance.get("camionId"),
                ))
            elif remaining < 0:
                alerts.append(_alert(
                    f"assurance-exp-{assurance.get('id')}", "assurance", "critique",
                    "Assurance expirée",
                    f"L'assurance {numero} a expiré il y a {-remaining} jour{_plural(-remaining)}",
                    fin, assurance.get("camionId"),
                ))

    if config.alerteVisite:
        for visite in visites:
            prochaine = to_date(visite.get("prochaineDate"))
            if prochaine is None:
                continue
            remaining = (prochaine - reference).days
            if 0 <= remaining <= config.joursAlerteVisite:
                level = "critique" if remaining <= config.joursCritiqueVisite else "important"
                alerts.append(_alert(
                    f"visite-{visite.get('id')}", "visite", level,
                    "Visite technique à programmer",
                    f"Visite technique prévue dans {remaining} jour{_plural(remaining)}",
                    prochaine, visite.get("camionId"),
                ))

    if config.alerteMaintenance:
        for camion in camions:
            if camion.get("etat") == "en_maintenance":
                alerts.append(_alert(
                    f"maintenance-{camion.get('id')}", "maintenance", "important",
                    "Camion en maintenance",
                    f"Le camion {camion.get('matricule', '')} est actuellement en maintenance",
                    reference, camion.get("id"),
                ))

    if config.alerteStock:
        for article in stock_alerts(stock):
            quantite = _qty(article.get("quantite"))
            if quantite <= config.seuilStockCritique:
                level = "critique"
            elif quantite <= config.seuilStockImportant:
                level = "important"
            else:
                level = "info"
            nom = article.get("nom", "")
            alerts.append(_alert(
                f"stock-{article.get('id')}", "stock", level,
                f"Stock bas: {nom}",
                f"Il ne reste que {quantite:g} {nom} en stock (seuil: {_qty(article.get('seuilAlerte')):g})",
                reference,
            ))

    if config.alerteFacture:
        for facture in factures:
            late = overdue_days(facture, reference)
            if late is None:
                continue
            level = "critique" if late > config.joursCritiqueFacture else "important"
            alerts.append(_alert(
                f"facture-{facture.get('id')}", "facture", level,
                "Facture en retard",
                f"La facture {facture.get('numero', '')} est en retard de {late} jour{_plural(late)}"
                f" ({format_currency(facture.get('montantRestant'))} restants)",
                to_date(facture.get("dateEcheance")),
            ))

    alerts.sort(key=lambda a: (LEVEL_PRIORITY[a["niveau"]], a["date"]))
    logger.debug("%d alertes calculées", len(alerts))
    return alerts


def count_by_level(alerts: List[Dict]) -> Dict[str, int]:
    counts = {level: 0 for level in LEVELS}
    for alert in alerts:
        counts[alert["niveau"]] += 1
    return counts
