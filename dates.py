"""
Conversion des dates Firestore / formulaires vers datetime et date Python
"""

import logging
import os
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import pandas as pd

logger = logging.getLogger(__name__)

APP_TIMEZONE = ZoneInfo(os.getenv("APP_TIMEZONE", "Africa/Casablanca"))


def to_datetime(value) -> Optional[datetime]:
    """
    Convertit une valeur de date quelconque en datetime

    Accepte les timestamps Firestore (datetime avec fuseau), les datetime
    naïfs, les date, et les chaînes ISO. Les valeurs avec fuseau sont
    ramenées dans le fuseau de l'application.

    Returns:
        datetime naïf exprimé dans le fuseau de l'application, ou None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(APP_TIMEZONE).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        parsed = pd.to_datetime(value, errors="coerce")
        if pd.isna(parsed):
            logger.warning("Date illisible ignorée: %r", value)
            return None
        return to_datetime(parsed.to_pydatetime())
    # Objets exposant to_datetime() (ex: anciens Timestamp Firestore)
    converter = getattr(value, "to_datetime", None)
    if callable(converter):
        return to_datetime(converter())
    logger.warning("Type de date non supporté: %r", type(value))
    return None


def to_date(value) -> Optional[date]:
    dt = to_datetime(value)
    return dt.date() if dt else None


def as_firestore_datetime(value):
    """Firestore ne stocke pas de date seule : minuit dans le fuseau de l'application"""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=APP_TIMEZONE)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=APP_TIMEZONE)
    return value


def days_in_range(start: date, end: date):
    """Jours de start à end inclus (vide si end < start)"""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def today() -> date:
    return datetime.now(APP_TIMEZONE).date()


def now() -> datetime:
    return datetime.now(APP_TIMEZONE)


def format_date(value, with_time: bool = False) -> str:
    """Formatte une date de manière lisible (jj/mm/aaaa)"""
    dt = to_datetime(value)
    if dt is None:
        return "—"
    return dt.strftime("%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y")
