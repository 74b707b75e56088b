"""
Calendrier : agrégation des missions, visites techniques, assurances,
entretiens et absences en une seule liste d'événements, puis filtrage
par type, fenêtre mois/semaine et regroupement par jour.

Les fonctions sont pures : la page recalcule tout à partir des listes
courantes à chaque mise à jour, même si certaines collections ne sont
pas encore arrivées (références manquantes -> 'N/A').
"""

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from dates import days_in_range, to_date, today

logger = logging.getLogger(__name__)

EVENT_TYPES = ("mission", "inspection", "insurance", "maintenance", "absence")

EVENT_COLORS = {
    "mission": "#0ea5e9",
    "inspection": "#10b981",
    "insurance": "#f59e0b",
    "maintenance": "#8b5cf6",
    "absence": "#ef4444",
}

EVENT_LABELS = {
    "all": "Tous",
    "mission": "Missions",
    "inspection": "Visites",
    "insurance": "Assurances",
    "maintenance": "Entretiens",
    "absence": "Absences",
}

ENTRETIEN_LABELS = {"vidange": "Vidange", "reparation": "Réparation"}
ABSENCE_LABELS = {"conge": "Congé", "maladie": "Maladie"}

# Badges visibles par case avant l'indicateur "+N"
BADGE_LIMITS = {"month": 2, "week": 5}

MISSING = "N/A"


def find_by_id(records: Iterable[Dict], record_id) -> Optional[Dict]:
    """Recherche linéaire par identifiant"""
    if not record_id:
        return None
    for record in records:
        if record.get("id") == record_id:
            return record
    return None


def vehicle_label(camion: Optional[Dict]) -> str:
    return (camion or {}).get("matricule") or MISSING


def driver_label(chauffeur: Optional[Dict]) -> str:
    if not chauffeur:
        return MISSING
    name = f"{chauffeur.get('prenom') or ''} {chauffeur.get('nom') or ''}".strip()
    return name or MISSING


def _event(event_id, event_type, title, day, data, camion_id=None, chauffeur_id=None) -> Dict:
    return {
        "id": event_id,
        "type": event_type,
        "title": title,
        "date": day,
        "camionId": camion_id,
        "chauffeurId": chauffeur_id,
        "color": EVENT_COLORS[event_type],
        "data": data,
    }


def build_events(
    missions: List[Dict],
    visites: List[Dict],
    assurances: List[Dict],
    entretiens: List[Dict],
    absences: List[Dict],
    camions: List[Dict],
    chauffeurs: List[Dict],
) -> List[Dict]:
    """
    Convertit les enregistrements en événements calendrier

    Returns:
        Liste d'événements {id, type, title, date, camionId, chauffeurId, color, data}
    """
    events = []

    for mission in missions:
        day = to_date(mission.get("dateDebut"))
        if day is None:
            logger.warning("Mission %s sans date de début, ignorée", mission.get("id"))
            continue
        camion = find_by_id(camions, mission.get("camionId"))
        chauffeur = find_by_id(chauffeurs, mission.get("chauffeurId"))
        title = (
            f"{mission.get('depart', '')} → {mission.get('destination', '')}"
            f" - {driver_label(chauffeur)} / {vehicle_label(camion)}"
        )
        events.append(_event(
            f"mission-{mission.get('id')}", "mission", title, day,
            {**mission, "camion": camion, "chauffeur": chauffeur, "dateFin": mission.get("dateFin") or mission.get("dateDebut")},
            camion_id=mission.get("camionId"), chauffeur_id=mission.get("chauffeurId"),
        ))

    for visite in visites:
        day = to_date(visite.get("date"))
        if day is None:
            logger.warning("Visite technique %s sans date, ignorée", visite.get("id"))
            continue
        camion = find_by_id(camions, visite.get("camionId"))
        events.append(_event(
            f"inspection-{visite.get('id')}", "inspection",
            f"Visite technique - {vehicle_label(camion)}", day,
            {**visite, "camion": camion}, camion_id=visite.get("camionId"),
        ))

    # Assurances : datées à l'expiration (rappel d'échéance)
    for assurance in assurances:
        day = to_date(assurance.get("dateFin"))
        if day is None:
            logger.warning("Assurance %s sans date de fin, ignorée", assurance.get("id"))
            continue
        camion = find_by_id(camions, assurance.get("camionId"))
        events.append(_event(
            f"insurance-{assurance.get('id')}", "insurance",
            f"Assurance expire - {vehicle_label(camion)}", day,
            {**assurance, "camion": camion}, camion_id=assurance.get("camionId"),
        ))

    for entretien in entretiens:
        day = to_date(entretien.get("date"))
        if day is None:
            logger.warning("Entretien %s sans date, ignoré", entretien.get("id"))
            continue
        camion = find_by_id(camions, entretien.get("camionId"))
        label = ENTRETIEN_LABELS.get(entretien.get("type"), "Entretien")
        events.append(_event(
            f"maintenance-{entretien.get('id')}", "maintenance",
            f"{label} - {vehicle_label(camion)}", day,
            {**entretien, "camion": camion}, camion_id=entretien.get("camionId"),
        ))

    # Absences : un événement par jour de la période
    for absence in absences:
        start = to_date(absence.get("dateDebut"))
        if start is None:
            logger.warning("Absence %s sans date de début, ignorée", absence.get("id"))
            continue
        end = to_date(absence.get("dateFin")) or start
        if end < start:
            logger.warning("Absence %s avec une fin avant le début, ignorée", absence.get("id"))
            continue
        chauffeur = find_by_id(chauffeurs, absence.get("chauffeurId"))
        title = f"{ABSENCE_LABELS.get(absence.get('type'), 'Absence')} - {driver_label(chauffeur)}"
        for day in days_in_range(start, end):
            events.append(_event(
                f"absence-{absence.get('id')}-{day.isoformat()}", "absence", title, day,
                {**absence, "chauffeur": chauffeur}, chauffeur_id=absence.get("chauffeurId"),
            ))

    return events


# ==========================================
# FILTRES & FENÊTRES
# ==========================================

def filter_by_type(events: List[Dict], type_filter: str = "all") -> List[Dict]:
    if type_filter == "all":
        return list(events)
    return [e for e in events if e["type"] == type_filter]


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())  # lundi


def _month_bounds(anchor: date) -> Tuple[date, date]:
    first = anchor.replace(day=1)
    last = (first.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(days=1)
    return first, last


def period_bounds(view_mode: str, anchor: date) -> Tuple[date, date]:
    """
    Fenêtre affichée pour un mode de vue

    month : du lundi précédant le 1er au dimanche suivant le dernier jour du mois
    week  : du lundi au dimanche de la semaine de l'ancre
    """
    if view_mode == "month":
        first, last = _month_bounds(anchor)
        return _week_start(first), _week_start(last) + timedelta(days=6)
    if view_mode == "week":
        start = _week_start(anchor)
        return start, start + timedelta(days=6)
    raise ValueError(f"Mode de vue inconnu: {view_mode}")


def events_in_period(events: List[Dict], view_mode: str, anchor: date) -> List[Dict]:
    start, end = period_bounds(view_mode, anchor)
    return [e for e in events if start <= e["date"] <= end]


def day_grid(view_mode: str, anchor: date) -> List[date]:
    """Jours de la grille (toujours un multiple de 7)"""
    start, end = period_bounds(view_mode, anchor)
    return list(days_in_range(start, end))


def shift_anchor(view_mode: str, anchor: date, step: int) -> date:
    """Mois ou semaine précédent(e) / suivant(e)"""
    if view_mode == "week":
        return anchor + timedelta(weeks=step)
    month_index = anchor.year * 12 + anchor.month - 1 + step
    return date(month_index // 12, month_index % 12 + 1, 1)


# ==========================================
# REGROUPEMENT PAR JOUR
# ==========================================

def day_key(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def group_by_day(events: List[Dict]) -> Dict[str, List[Dict]]:
    """Événements par jour 'YYYY-MM-DD', ordre d'insertion conservé"""
    grouped = {}
    for event in events:
        grouped.setdefault(day_key(event["date"]), []).append(event)
    return grouped


def cell_badges(day_events: List[Dict], view_mode: str) -> Tuple[List[Dict], int]:
    """Badges visibles d'une case et nombre d'événements masqués (+N)"""
    limit = BADGE_LIMITS.get(view_mode, BADGE_LIMITS["month"])
    return day_events[:limit], max(0, len(day_events) - limit)


def events_for_day(grouped: Dict[str, List[Dict]], day: Optional[date] = None) -> List[Dict]:
    """Détail d'un jour sélectionné (aujourd'hui par défaut)"""
    return grouped.get(day_key(day or today()), [])


def calendar_view(
    events: List[Dict],
    type_filter: str = "all",
    view_mode: str = "month",
    anchor: Optional[date] = None,
) -> Dict:
    """Pipeline complet filtre -> fenêtre -> regroupement utilisé par la page Calendrier"""
    anchor = anchor or today()
    filtered = filter_by_type(events, type_filter)
    visible = events_in_period(filtered, view_mode, anchor)
    return {
        "days": day_grid(view_mode, anchor),
        "events": visible,
        "by_day": group_by_day(visible),
        # Détail d'un jour hors de la fenêtre affichée
        "all_by_day": group_by_day(filtered),
        "bounds": period_bounds(view_mode, anchor),
    }
