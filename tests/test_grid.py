import unittest
from dataclasses import replace
from datetime import time

from edt.domain import Period, Session, SessionType, Slot, StudentGroup
from edt.exceptions import GridConflictError
from edt.grid import GridState


MONDAY_MORNING = Slot("Lundi", Period(time(8, 30), time(10, 0)))
MONDAY_LATE_MORNING = Slot("Lundi", Period(time(10, 15), time(11, 45)))

SECTION_A = StudentGroup("Info", "Section A")
SECTION_A_G1 = StudentGroup("Info", "Section A", 1)
SECTION_A_G2 = StudentGroup("Info", "Section A", 2)
SECTION_B_G1 = StudentGroup("Info", "Section B", 1)
OTHER_TRACK = StudentGroup("Maths", "Section A")


def make_session(
    group: StudentGroup,
    slot: Slot = MONDAY_MORNING,
    *,
    teachers: tuple[str, ...] = (),
    room: str | None = None,
    subject: str = "Algo",
    session_type: SessionType = SessionType.COURS,
) -> Session:
    return Session(
        subject=subject,
        session_type=session_type,
        group=group,
        slot=slot,
        teachers=teachers,
        room=room,
        volume=2,
    )


class GridStateTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.grid = GridState()

    def test_place_assigns_increasing_ids(self) -> None:
        first = self.grid.place(make_session(SECTION_A))
        second = self.grid.place(make_session(OTHER_TRACK))

        self.assertEqual((first.id, second.id), (1, 2))
        self.assertEqual(len(self.grid), 2)
        self.assertIn(1, self.grid)
        self.assertEqual(self.grid.next_id, 3)

    def test_lecture_blocks_its_groups_and_the_other_way_round(self) -> None:
        self.grid.place(make_session(SECTION_A))

        self.assertTrue(self.grid.is_group_busy(MONDAY_MORNING, SECTION_A_G1))
        self.assertFalse(self.grid.is_group_busy(MONDAY_MORNING, SECTION_B_G1))
        self.assertFalse(self.grid.is_group_busy(MONDAY_MORNING, OTHER_TRACK))
        self.assertFalse(self.grid.is_group_busy(MONDAY_LATE_MORNING, SECTION_A_G1))

        grid = GridState([make_session(SECTION_A_G2, session_type=SessionType.TD)])
        self.assertTrue(grid.is_group_busy(MONDAY_MORNING, SECTION_A))

    def test_sibling_groups_do_not_conflict(self) -> None:
        self.grid.place(make_session(SECTION_A_G1, session_type=SessionType.TD))

        self.assertFalse(self.grid.is_group_busy(MONDAY_MORNING, SECTION_A_G2))
        self.assertTrue(self.grid.is_group_busy(MONDAY_MORNING, SECTION_A_G1))

    def test_double_booking_is_refused_without_side_effects(self) -> None:
        self.grid.place(make_session(SECTION_A, teachers=("Ada",), room="Amphi"))

        with self.assertRaises(GridConflictError) as ctx:
            self.grid.place(make_session(OTHER_TRACK, teachers=("Ada",)))

        self.assertIn("Ada", str(ctx.exception))
        self.assertEqual(len(self.grid), 1)
        self.assertTrue(self.grid.has_conflict(MONDAY_MORNING, OTHER_TRACK, teacher="Ada"))
        self.assertTrue(self.grid.has_conflict(MONDAY_MORNING, OTHER_TRACK, room="Amphi"))
        self.assertFalse(
            self.grid.has_conflict(MONDAY_MORNING, OTHER_TRACK, teacher="Blaise", room="S1")
        )

    def test_overlaps_can_be_forced_and_are_reported(self) -> None:
        self.grid.place(make_session(SECTION_A, teachers=("Ada",)))
        self.grid.place(make_session(OTHER_TRACK, teachers=("Ada",)), allow_overlap=True)

        conflicts = self.grid.find_conflicts()

        self.assertEqual(len(self.grid), 2)
        self.assertEqual([(c.kind, c.key) for c in conflicts], [("Enseignant", "Ada")])
        self.assertEqual(conflicts[0].session_ids, (1, 2))

    def test_group_overlaps_are_reported_but_not_sibling_groups(self) -> None:
        self.grid.place(make_session(SECTION_A_G1, session_type=SessionType.TD))
        self.grid.place(make_session(SECTION_A_G2, session_type=SessionType.TP))
        self.assertEqual(self.grid.find_conflicts(), [])

        self.grid.place(make_session(SECTION_A), allow_overlap=True)

        kinds = [conflict.kind for conflict in self.grid.find_conflicts()]
        self.assertEqual(kinds, ["Groupe", "Groupe"])

    def test_placing_a_known_id_moves_the_session(self) -> None:
        placed = self.grid.place(make_session(SECTION_A, teachers=("Ada",)))

        self.grid.place(replace(placed, slot=MONDAY_LATE_MORNING))

        self.assertEqual(len(self.grid), 1)
        self.assertFalse(self.grid.is_group_busy(MONDAY_MORNING, SECTION_A))
        self.assertFalse(self.grid.is_teacher_booked(MONDAY_MORNING, "Ada"))
        self.assertTrue(self.grid.is_teacher_booked(MONDAY_LATE_MORNING, "Ada"))

    def test_refused_update_keeps_the_original(self) -> None:
        moved = self.grid.place(make_session(SECTION_A, teachers=("Ada",)))
        self.grid.place(make_session(OTHER_TRACK, MONDAY_LATE_MORNING, teachers=("Blaise",)))

        with self.assertRaises(GridConflictError):
            self.grid.place(replace(moved, slot=MONDAY_LATE_MORNING, teachers=("Blaise",)))

        self.assertEqual(self.grid.get(moved.id).slot, MONDAY_MORNING)
        self.assertTrue(self.grid.is_teacher_booked(MONDAY_MORNING, "Ada"))

    def test_remove_frees_the_slot(self) -> None:
        placed = self.grid.place(make_session(SECTION_A, teachers=("Ada",), room="Amphi"))

        removed = self.grid.remove(placed.id)

        self.assertEqual(removed, placed)
        self.assertFalse(self.grid.has_conflict(MONDAY_MORNING, SECTION_A, "Ada", "Amphi"))
        with self.assertRaises(KeyError):
            self.grid.remove(placed.id)

    def test_copy_is_independent(self) -> None:
        self.grid.place(make_session(SECTION_A))
        snapshot = self.grid.copy()

        snapshot.place(make_session(OTHER_TRACK, teachers=("Ada",)))

        self.assertEqual(len(self.grid), 1)
        self.assertEqual(len(snapshot), 2)
        self.assertFalse(self.grid.is_teacher_booked(MONDAY_MORNING, "Ada"))
        self.assertEqual(snapshot.next_id, 3)

    def test_conflicts_for_explains_every_clash(self) -> None:
        self.grid.place(make_session(SECTION_A, teachers=("Ada",), room="Amphi"))

        messages = self.grid.conflicts_for(
            make_session(SECTION_A_G1, teachers=("Ada",), room="Amphi")
        )

        self.assertEqual(len(messages), 3)
        self.assertIn("Info – Section A – G1", messages[0])
        self.assertIn("Ada", messages[1])
        self.assertIn("Amphi", messages[2])

    def test_parallel_sessions_of_a_subject_are_detected(self) -> None:
        self.grid.place(make_session(SECTION_A_G1, session_type=SessionType.TD))

        self.assertTrue(self.grid.runs_in_parallel(MONDAY_MORNING, "Algo", SessionType.TD))
        self.assertFalse(self.grid.runs_in_parallel(MONDAY_MORNING, "Algo", SessionType.TP))
        self.assertFalse(self.grid.runs_in_parallel(MONDAY_MORNING, "Réseaux", SessionType.TD))

    def test_lookups_by_subject_and_group(self) -> None:
        td = self.grid.place(make_session(SECTION_A_G1, session_type=SessionType.TD))
        self.grid.place(make_session(OTHER_TRACK, subject="Analyse"))

        self.assertEqual(self.grid.sessions_for_subject("Algo"), [td])
        self.assertEqual(self.grid.existing("Algo", SessionType.TD, SECTION_A_G1), td)
        self.assertIsNone(self.grid.existing("Algo", SessionType.TP, SECTION_A_G1))


if __name__ == "__main__":
    unittest.main()
