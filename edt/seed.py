from .extensions import db
from .models import Forfait, Room, RoomPreference, Subject, SupplementaryVolume, Teacher


def seed_data() -> bool:
    if Subject.query.count() or Teacher.query.count():
        return False

    subjects = [
        Subject(
            name="Algorithmique",
            track="Informatique L1",
            sections_cours=1,
            td_groups=2,
            tp_groups=2,
            volume_cours=1.5,
            volume_td=1.5,
            volume_tp=1.5,
            nb_enseignants_tp=1,
        ),
        Subject(
            name="Analyse",
            track="Informatique L1",
            sections_cours=1,
            td_groups=2,
            tp_groups=0,
            volume_cours=1.5,
            volume_td=1.5,
            volume_tp=0,
            nb_enseignants_tp=1,
        ),
        Subject(
            name="Réseaux",
            track="Informatique L2",
            sections_cours=2,
            td_groups=1,
            tp_groups=1,
            volume_cours=1.5,
            volume_td=1.5,
            volume_tp=1.5,
            nb_enseignants_tp=2,
        ),
    ]

    alice = Teacher(name="Alice Martin")
    alice.set_wishes(["Lundi 8h30", "Mardi 10h15"])
    bruno = Teacher(name="Bruno Costa")
    bruno.set_wishes(["Mercredi 14h00"])
    bruno.supplementary_volumes.append(
        SupplementaryVolume(volume=3, description="Encadrement de projets")
    )
    chloe = Teacher(name="Chloé Durand")
    david = Teacher(name="David Leroy", forfait_only=True)
    david.forfaits.append(
        Forfait(nature="Responsable de filière", volume=24, description="Pilotage L1")
    )

    amphi = Room(name="Amphi A", room_type="Amphi")
    rooms = [
        amphi,
        Room(name="Salle 101", room_type="Standard"),
        Room(name="Salle 102", room_type="Standard"),
        Room(name="STP 1", room_type="STP"),
        Room(name="STP 2", room_type="STP"),
    ]

    db.session.add_all(subjects + [alice, bruno, chloe, david] + rooms)
    db.session.add(RoomPreference(track="Informatique L1", session_type="Cours", room=amphi))
    db.session.commit()
    return True
