"""
Carte des trajets : coordonnées des villes marocaines et tracé folium des missions
"""

import logging
import re
import unicodedata
from math import atan2, cos, radians, sin, sqrt
from typing import Dict, List, Optional, Tuple

import folium

from calendar_events import driver_label, find_by_id, vehicle_label
from schemas import MISSION_STATUS_LABELS

logger = logging.getLogger(__name__)

# Coordonnées (lat, lon) des principales villes du Maroc
MOROCCAN_CITIES = {
    "Casablanca": (33.5731, -7.5898),
    "Rabat": (34.0209, -6.8416),
    "Fès": (34.0331, -5.0003),
    "Marrakech": (31.6295, -7.9811),
    "Tanger": (35.7595, -5.8340),
    "Agadir": (30.4278, -9.5981),
    "Meknès": (33.8938, -5.5473),
    "Oujda": (34.6867, -1.9114),
    "Kénitra": (34.2611, -6.5802),
    "Tétouan": (35.5886, -5.3700),
    "Safi": (32.2833, -9.2333),
    "El Jadida": (33.2543, -8.5061),
    "Khénifra": (32.9389, -5.6614),
    "Béni Mellal": (32.3394, -6.3608),
    "Nador": (35.1683, -2.9336),
    "Settat": (33.0011, -7.6167),
    "Larache": (35.1911, -6.1556),
    "Khémisset": (33.8156, -6.0575),
    "Taza": (34.2144, -4.0086),
    "Errachidia": (31.9319, -4.4244),
    "Ouarzazate": (30.9200, -6.9100),
}

STATUS_COLORS = {
    "en_cours": "#0ea5e9",
    "termine": "#10b981",
}
DEFAULT_ROUTE_COLOR = "#6b7280"

MOROCCO_CENTER = (31.7917, -7.0926)


def _strip_accents(text: str) -> str:
    text = unicodedata.normalize("NFKD", text)
    return text.encode("ascii", "ignore").decode("ascii")


def city_coordinates(name: str) -> Optional[Tuple[float, float]]:
    """
    Coordonnées (lat, lon) d'une ville

    Recherche exacte, puis insensible à la casse, puis partielle,
    puis sans accents. None si la ville est inconnue.
    """
    if not isinstance(name, str) or not name.strip():
        return None
    cleaned = re.sub(r"\s+", " ", name.strip())
    if cleaned in MOROCCAN_CITIES:
        return MOROCCAN_CITIES[cleaned]

    lowered = cleaned.lower()
    for city, coords in MOROCCAN_CITIES.items():
        if city.lower() == lowered:
            return coords
    for city, coords in MOROCCAN_CITIES.items():
        if lowered in city.lower() or city.lower() in lowered:
            return coords
    plain = _strip_accents(lowered)
    for city, coords in MOROCCAN_CITIES.items():
        if _strip_accents(city.lower()) == plain:
            return coords
    return None


def haversine(lat1, lon1, lat2, lon2) -> float:
    """Distance géodésique entre deux points en kilomètres"""
    R = 6371.0
    dlon = radians(lon2 - lon1)
    dlat = radians(lat2 - lat1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    return R * 2 * atan2(sqrt(a), sqrt(1 - a))


def mission_routes(missions: List[Dict], camions: List[Dict], chauffeurs: List[Dict]) -> List[Dict]:
    """
    Un tracé par mission dont les deux villes sont connues

    Returns:
        Liste de {'mission', 'start', 'end', 'color', 'dashed', 'label', 'distance_km'}
    """
    routes = []
    for mission in missions:
        start = city_coordinates(mission.get("depart"))
        end = city_coordinates(mission.get("destination"))
        if start is None or end is None:
            logger.warning(
                "Mission %s ignorée sur la carte: ville inconnue (%s -> %s)",
                mission.get("id"), mission.get("depart"), mission.get("destination"),
            )
            continue
        statut = mission.get("statut")
        camion = find_by_id(camions, mission.get("camionId"))
        chauffeur = find_by_id(chauffeurs, mission.get("chauffeurId"))
        routes.append({
            "mission": mission,
            "start": start,
            "end": end,
            "color": STATUS_COLORS.get(statut, DEFAULT_ROUTE_COLOR),
            "dashed": statut == "en_cours",
            "label": (
                f"{mission.get('depart')} → {mission.get('destination')} "
                f"({vehicle_label(camion)} / {driver_label(chauffeur)})"
            ),
            "distance_km": round(haversine(*start, *end), 1),
        })
    return routes


def build_mission_map(routes: List[Dict]) -> folium.Map:
    """Carte folium : une polyligne et deux marqueurs par trajet, cadrée sur les trajets"""
    m = folium.Map(location=list(MOROCCO_CENTER), zoom_start=6)
    points = []
    for route in routes:
        mission = route["mission"]
        statut = MISSION_STATUS_LABELS.get(mission.get("statut"), mission.get("statut", "-"))
        folium.PolyLine(
            locations=[list(route["start"]), list(route["end"])],
            color=route["color"],
            weight=4,
            opacity=0.8,
            dash_array="10" if route["dashed"] else None,
            tooltip=f"{route['label']} - {statut} - {route['distance_km']} km",
        ).add_to(m)
        for coords, city, bg_color in (
            (route["start"], mission.get("depart", ""), "#2ecc71"),
            (route["end"], mission.get("destination", ""), "#e74c3c"),
        ):
            folium.Marker(
                location=list(coords),
                tooltip=city,
                icon=folium.DivIcon(
                    icon_size=(16, 16),
                    icon_anchor=(8, 8),
                    html=(
                        f'<div style="background-color:{bg_color}; border-radius:50%; width:16px; '
                        f'height:16px; border:2px solid white; box-shadow:0 0 3px rgba(0,0,0,0.5);"></div>'
                    ),
                ),
            ).add_to(m)
        points.extend([route["start"], route["end"]])
    if points:
        lats = [p[0] for p in points]
        lons = [p[1] for p in points]
        m.fit_bounds([[min(lats), min(lons)], [max(lats), max(lons)]])
    return m
