"""
Données de démonstration : purge des collections puis génération d'un
jeu de données cohérent (camions, chauffeurs, clients, missions, ...)

Les écritures d'une étape partent en parallèle ; une écriture en échec
est journalisée et ignorée, sans retour arrière.
"""

import logging
import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from firebase_admin import firestore

from dates import today
from schemas import (
    AbsenceIn,
    AssuranceIn,
    CamionIn,
    ChauffeurIn,
    ClientIn,
    CoutEstime,
    DepenseIn,
    EntretienIn,
    MissionIn,
    RecetteIn,
    StockIn,
    VisiteTechniqueIn,
)

logger = logging.getLogger(__name__)

DEMO_COLLECTIONS = (
    "camions", "chauffeurs", "clients", "missions", "assurances", "visitesTechniques",
    "entretiens", "depenses", "recettes", "factures", "stock", "mouvementsStock", "absences",
)

VILLES = ["Khénifra", "El Jadida", "Casablanca", "Rabat", "Fès", "Meknès", "Marrakech", "Tanger", "Agadir"]

CAMIONS = [
    ("Mercedes-Benz", "Actros", "#0ea5e9"),
    ("Volvo", "FH", "#10b981"),
    ("Scania", "R Series", "#f59e0b"),
    ("Renault", "T High", "#8b5cf6"),
]

CHAUFFEURS = [("Ahmed", "Alami"), ("Mohamed", "Benali"), ("Hassan", "Idrissi"), ("Youssef", "Bennani"), ("Omar", "Tazi")]

CLIENTS = [
    ("Transports ATLAS", "entreprise", "Casablanca", "contact@transportsatlas.ma"),
    ("Logistique Maroc Express", "entreprise", "Rabat", "info@lmexpress.ma"),
    ("Transport Oum Er-Rbia", "entreprise", "El Jadida", "contact@toer.ma"),
    ("Karim Alami", "particulier", "Khénifra", "karim.alami@gmail.com"),
]

STOCK = [
    ("Huile moteur 15W40", "huile", 120),
    ("Filtre à huile", "filtre", 45),
    ("Filtre à air", "filtre", 60),
    ("Plaquettes de frein", "freinage", 350),
    ("Pneu 315/80 R22.5", "pneu", 2800),
    ("Liquide de refroidissement", "liquide", 90),
]

TYPES_DEPENSE = ["carburant", "peage", "entretien", "assurance", "salaire", "autre"]


def _add(db, collection_name: str, document: Dict) -> str:
    _, ref = db.collection(collection_name).add({**document, "createdAt": firestore.SERVER_TIMESTAMP})
    return ref.id


def _write_all(db, collection_name: str, documents: Sequence[Dict], max_workers: int) -> Tuple[List[Optional[str]], int]:
    """
    Écrit les documents en parallèle

    Returns:
        (ids dans l'ordre des documents, None pour les échecs ; nombre d'échecs)
    """
    ids: List[Optional[str]] = [None] * len(documents)
    failures = 0
    if not documents:
        return ids, failures
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(_add, db, collection_name, doc): i for i, doc in enumerate(documents)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                ids[index] = future.result()
            except Exception as e:
                failures += 1
                logger.error("Écriture %s #%d échouée, ignorée: %s", collection_name, index, e)
    logger.info("%s: %d document(s) créé(s), %d échec(s)", collection_name, len(documents) - failures, failures)
    return ids, failures


def clear_collections(db, collections: Sequence[str] = DEMO_COLLECTIONS, max_workers: int = 8) -> Dict[str, int]:
    """Supprime tous les documents des collections ; retourne le nombre supprimé par collection"""
    deleted = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        for name in collections:
            futures = [pool.submit(doc.reference.delete) for doc in db.collection(name).stream()]
            count = 0
            for future in as_completed(futures):
                try:
                    future.result()
                    count += 1
                except Exception as e:
                    logger.error("Suppression dans %s échouée, ignorée: %s", name, e)
            deleted[name] = count
            logger.info("%s: %d document(s) supprimé(s)", name, count)
    return deleted


def _matricule(rng: random.Random) -> str:
    letter = rng.choice("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
    return f"{letter}{rng.randint(0, 9999):04d}-{rng.randint(0, 99):02d}"


def _phone(rng: random.Random) -> str:
    return f"0{rng.choice('67')}{rng.randint(10000000, 99999999)}"


def _day(reference: date, offset: int) -> date:
    return reference + timedelta(days=offset)


def _mission_status(start: date, end: date, reference: date) -> str:
    if end < reference:
        return "termine"
    if start <= reference:
        return "en_cours"
    return "planifie"


def seed_demo_data(db, seed: Optional[int] = None, reference: Optional[date] = None, max_workers: int = 8) -> Dict[str, int]:
    """
    Génère le jeu de démonstration

    Args:
        db: client Firestore
        seed: graine du générateur (données identiques à graine égale)
        reference: jour autour duquel les dates sont générées (aujourd'hui par défaut)

    Returns:
        Nombre de documents créés par collection, et 'echecs'
    """
    rng = random.Random(seed)
    reference = reference or today()
    counts: Dict[str, int] = {}
    failures = 0

    def write(name, models):
        nonlocal failures
        ids, failed = _write_all(db, name, [m.to_document() for m in models], max_workers)
        failures += failed
        counts[name] = len(models) - failed
        return ids

    # Référentiels
    camion_ids = write("camions", [
        CamionIn(
            matricule=_matricule(rng),
            marque=marque,
            modele=modele,
            dateAchat=_day(reference, -rng.randint(400, 1200)),
            etat="en_maintenance" if i == 2 else "actif",
            kilometrageActuel=80000 + i * 50000 + rng.randint(0, 9999),
            couleur=couleur,
        )
        for i, (marque, modele, couleur) in enumerate(CAMIONS)
    ])
    chauffeur_ids = write("chauffeurs", [
        ChauffeurIn(
            prenom=prenom,
            nom=nom,
            email=f"{prenom.lower()}.{nom.lower()}@example.ma",
            telephone=_phone(rng),
            permis=f"PERMIS-{100000 + i * 100000}",
            dateObtentionPermis=_day(reference, -rng.randint(2000, 3500)),
            dateEmbauche=_day(reference, -rng.randint(300, 1000)),
            typeContrat="cdi" if i < 3 else "cdd",
            salaire=9000 + i * 1000,
            soldAnnuelConge=18,
        )
        for i, (prenom, nom) in enumerate(CHAUFFEURS)
    ])
    client_ids = write("clients", [
        ClientIn(nom=nom, type=kind, ville=ville, pays="Maroc", email=email, telephone=_phone(rng))
        for nom, kind, ville, email in CLIENTS
    ])

    camions = [c for c in camion_ids if c]
    chauffeurs = [c for c in chauffeur_ids if c]
    clients = [c for c in client_ids if c]

    if camions and chauffeurs:
        missions = []
        for _ in range(12):
            start = _day(reference, rng.randint(-30, 30))
            end = start + timedelta(days=rng.randint(0, 2))
            depart, destination = rng.sample(VILLES, 2)
            missions.append(MissionIn(
                depart=depart,
                destination=destination,
                dateDebut=start,
                dateFin=end,
                camionId=rng.choice(camions),
                chauffeurId=rng.choice(chauffeurs),
                statut=_mission_status(start, end, reference),
                coutEstime=CoutEstime(
                    carburant=rng.randint(800, 2500),
                    peage=rng.randint(50, 300),
                    repas=rng.randint(50, 200),
                ),
                recette=rng.randint(3000, 9000),
            ))
        mission_ids = write("missions", missions)

        write("recettes", [
            RecetteIn(
                date=m.dateFin or m.dateDebut,
                montant=m.recette,
                description=f"Transport {m.depart} → {m.destination}",
                clientId=rng.choice(clients) if clients else None,
                missionId=mission_id,
            )
            for m, mission_id in zip(missions, mission_ids)
            if mission_id and m.statut == "termine"
        ])

    if camions:
        write("assurances", [
            AssuranceIn(
                camionId=camion_id,
                numero=f"ASS-{reference.year}-{i + 1:03d}",
                compagnie=rng.choice(["Wafa Assurance", "AXA Maroc", "RMA"]),
                dateDebut=_day(reference, -330),
                dateFin=_day(reference, rng.randint(-5, 60)),
                montant=rng.randint(8000, 15000),
            )
            for i, camion_id in enumerate(camions)
        ])
        write("visitesTechniques", [
            VisiteTechniqueIn(
                camionId=camion_id,
                date=_day(reference, -rng.randint(150, 340)),
                prochaineDate=_day(reference, rng.randint(3, 45)),
                resultat="valide",
            )
            for camion_id in camions
        ])
        write("entretiens", [
            EntretienIn(
                camionId=camion_id,
                type=kind,
                date=_day(reference, rng.randint(-20, 20)),
                description="Vidange complète" if kind == "vidange" else "Remplacement plaquettes",
                cout=rng.randint(600, 4000),
            )
            for camion_id in camions
            for kind in ("vidange", "reparation")
        ])

    if chauffeurs:
        absences = []
        for chauffeur_id in rng.sample(chauffeurs, min(3, len(chauffeurs))):
            start = _day(reference, rng.randint(-10, 20))
            absences.append(AbsenceIn(
                chauffeurId=chauffeur_id,
                type=rng.choice(["conge", "maladie"]),
                dateDebut=start,
                dateFin=start + timedelta(days=rng.randint(0, 4)),
            ))
        write("absences", absences)

    write("stock", [
        StockIn(
            nom=nom,
            type=kind,
            quantite=rng.randint(0, 40) if i % 2 else rng.randint(0, 8),
            seuilAlerte=10,
            prixUnitaire=prix,
        )
        for i, (nom, kind, prix) in enumerate(STOCK)
    ])

    write("depenses", [
        DepenseIn(
            type=kind,
            date=_day(reference, -rng.randint(0, 90)),
            montant=rng.randint(200, 6000),
            description=f"Dépense {kind}",
            camionId=rng.choice(camions) if camions and kind in ("carburant", "peage", "entretien") else None,
        )
        for kind in (rng.choice(TYPES_DEPENSE) for _ in range(15))
    ])

    counts["echecs"] = failures
    logger.info("Données de démonstration générées: %s", counts)
    return counts
