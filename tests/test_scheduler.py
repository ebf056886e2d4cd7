import unittest
from datetime import time
from statistics import pvariance

from edt.domain import (
    Catalog,
    Period,
    Room,
    RoomType,
    SchedulingPolicy,
    Session,
    SessionType,
    StudentGroup,
    Subject,
    Teacher,
    TimeGrid,
)
from edt.exceptions import InvalidSubjectConfiguration, UnknownSubjectError
from edt.grid import GridState
from edt.report import Outcome, Shortfall
from edt.scheduler import SchedulingEngine
from edt.volumes import teacher_share, teacher_volumes


ROOMS = [
    Room("Amphi A", RoomType.AMPHI),
    Room("Salle 101", RoomType.STANDARD),
    Room("Salle 102", RoomType.STANDARD),
    Room("STP 1", RoomType.STP),
    Room("STP 2", RoomType.STP),
]


def algorithms() -> Subject:
    return Subject(
        name="Algorithms",
        track="Info",
        sections_cours=1,
        td_groups=2,
        tp_groups=0,
        volume_cours=2,
        volume_td=1.5,
    )


def make_engine(
    subjects: list[Subject],
    teachers: list[Teacher] | None = None,
    rooms: list[Room] | None = None,
    grid: GridState | None = None,
    time_grid: TimeGrid | None = None,
    **kwargs,
) -> SchedulingEngine:
    catalog = Catalog(
        subjects=subjects,
        teachers=teachers if teachers is not None else [Teacher("Ada"), Teacher("Blaise")],
        rooms=rooms if rooms is not None else ROOMS,
    )
    return SchedulingEngine(catalog, grid or GridState(), time_grid or TimeGrid(), **kwargs)


class SubjectGenerationTestCase(unittest.TestCase):
    def test_lecture_and_tutorials_take_the_first_three_slots(self) -> None:
        engine = make_engine([algorithms()])

        report = engine.auto_generate_subject_sessions("Algorithms", SchedulingPolicy())

        self.assertEqual([e.outcome for e in report.entries], [Outcome.PLACED] * 3)
        self.assertEqual(
            [e.request.group.label for e in report.entries],
            ["Section A", "Section A – G1", "Section A – G2"],
        )
        self.assertEqual(
            [e.session.slot for e in report.entries],
            list(engine.time_grid.slots()[:3]),
        )
        self.assertEqual(report.entries[0].session.room, "Amphi A")
        self.assertEqual(report.entries[1].session.room, "Salle 101")
        self.assertEqual(report.status, "success")
        self.assertEqual(report.finalise(), "3 séance(s) générée(s)")
        self.assertEqual(len(engine.grid), 3)

    def test_least_loaded_teacher_is_chosen(self) -> None:
        subject = Subject(name="Analyse", track="Maths", sections_cours=1, td_groups=1,
                          volume_cours=1, volume_td=1)
        teachers = [Teacher("A", adjustments=(10,)), Teacher("B", adjustments=(2,))]
        engine = make_engine([subject], teachers)

        report = engine.auto_generate_subject_sessions(subject)

        self.assertEqual([e.session.teachers for e in report.entries], [("B",), ("B",)])

    def test_ranking_compares_volumes_to_the_mean(self) -> None:
        subject = Subject(name="Analyse", sections_cours=1, volume_cours=2)
        teachers = [Teacher("A", adjustments=(10,)), Teacher("B", adjustments=(2,))]
        engine = make_engine([subject], teachers)
        engine.refresh_volumes()

        # (2 + 10 + 2) / 2
        self.assertEqual(engine.mean_volume, 7)
        ranked = engine.rank_teachers(engine.time_grid.slots()[0], SchedulingPolicy())
        self.assertEqual([t.name for t in ranked], ["B", "A"])

    def test_first_wish_outranks_load(self) -> None:
        time_grid = TimeGrid()
        first_slot = time_grid.slots()[0]
        subject = Subject(name="Analyse", sections_cours=1, volume_cours=1)
        teachers = [
            Teacher("A", wishes=(first_slot,), adjustments=(10,)),
            Teacher("B", adjustments=(2,)),
        ]

        with_wishes = make_engine([subject], teachers, time_grid=time_grid)
        without_wishes = make_engine([subject], teachers, time_grid=time_grid)

        report = with_wishes.auto_generate_subject_sessions(subject)
        ignored = without_wishes.auto_generate_subject_sessions(
            subject, SchedulingPolicy(respect_wishes=False)
        )

        self.assertEqual(report.entries[0].session.teachers, ("A",))
        self.assertEqual(ignored.entries[0].session.teachers, ("B",))

    def test_second_wish_outranks_third_which_outranks_none(self) -> None:
        time_grid = TimeGrid()
        slot, other, another = time_grid.slots()[:3]
        subject = Subject(name="Analyse", sections_cours=1, volume_cours=1)
        teachers = [
            Teacher("N"),
            Teacher("T3", wishes=(other, another, slot), adjustments=(4,)),
            Teacher("T2", wishes=(other, slot), adjustments=(8,)),
        ]
        engine = make_engine([subject], teachers, time_grid=time_grid)
        engine.refresh_volumes()

        ranked = engine.rank_teachers(slot, SchedulingPolicy())
        unranked = engine.rank_teachers(slot, SchedulingPolicy(respect_wishes=False))

        self.assertEqual([t.name for t in ranked], ["T2", "T3", "N"])
        self.assertEqual([t.name for t in unranked], ["N", "T3", "T2"])

    def test_booked_room_gives_partial_placement(self) -> None:
        grid = GridState()
        first_slot = TimeGrid().slots()[0]
        grid.place(
            Session(
                subject="Physique",
                session_type=SessionType.COURS,
                group=StudentGroup("Physique", "Section A"),
                slot=first_slot,
                room="Salle 101",
            )
        )
        subject = Subject(name="Analyse", track="Maths", sections_cours=1)
        engine = make_engine([subject], rooms=[Room("Salle 101", RoomType.STANDARD)], grid=grid)

        report = engine.auto_generate_subject_sessions(subject)

        entry = report.entries[0]
        self.assertEqual(entry.outcome, Outcome.PLACED_PARTIAL)
        self.assertEqual(entry.shortfalls, (Shortfall.MISSING_ROOM,))
        self.assertEqual(entry.session.slot, first_slot)
        self.assertIsNone(entry.session.room)
        self.assertEqual(entry.session.teachers, ("Ada",))
        self.assertEqual(report.status, "warning")

    def test_busy_teachers_give_partial_placement(self) -> None:
        grid = GridState()
        first_slot = TimeGrid().slots()[0]
        grid.place(
            Session(
                subject="Physique",
                session_type=SessionType.COURS,
                group=StudentGroup("Physique", "Section A"),
                slot=first_slot,
                teachers=("Ada",),
            )
        )
        subject = Subject(name="Analyse", track="Maths", sections_cours=1)
        engine = make_engine([subject], teachers=[Teacher("Ada")], grid=grid)

        entry = engine.auto_generate_subject_sessions(subject).entries[0]

        self.assertEqual(entry.outcome, Outcome.PLACED_PARTIAL)
        self.assertEqual(entry.shortfalls, (Shortfall.MISSING_TEACHER,))
        self.assertEqual(entry.session.teachers, ())
        self.assertEqual(entry.session.room, "Amphi A")

    def test_request_without_slot_is_unplaced_and_batch_goes_on(self) -> None:
        time_grid = TimeGrid(["Lundi"], [Period(time(8, 30), time(10, 0))])
        subject = Subject(name="Analyse", track="Maths", sections_cours=2, td_groups=1)
        engine = make_engine([subject], time_grid=time_grid)

        report = engine.auto_generate_subject_sessions(subject)

        # Section B's lecture cannot run beside section A's, its tutorial can.
        self.assertEqual(
            [e.outcome for e in report.entries],
            [Outcome.PLACED, Outcome.UNPLACED, Outcome.UNPLACED, Outcome.PLACED],
        )
        self.assertEqual(report.entries[1].shortfalls, (Shortfall.NO_SLOT_AVAILABLE,))
        self.assertIsNone(report.entries[1].session)
        self.assertEqual(report.entries[3].session.teachers, ("Blaise",))
        self.assertEqual(report.status, "error")
        self.assertEqual(len(engine.grid), 2)

    def test_one_entry_per_request(self) -> None:
        for sections, td, tp in [(0, 2, 2), (1, 0, 0), (2, 3, 1), (3, 1, 2)]:
            subject = Subject(name="M", track="T", sections_cours=sections, td_groups=td,
                              tp_groups=tp)
            report = make_engine([subject]).auto_generate_subject_sessions(subject)
            self.assertEqual(len(report.entries), sections + sections * td + sections * tp)

    def test_batches_never_double_book(self) -> None:
        subjects = [
            Subject(name="Algo", track="Info", sections_cours=2, td_groups=2, tp_groups=2),
            Subject(name="Réseaux", track="Info", sections_cours=2, td_groups=1, tp_groups=1,
                    nb_enseignants_tp=2),
            Subject(name="Analyse", track="Maths", sections_cours=1, td_groups=3),
        ]
        teachers = [Teacher(name) for name in ("Ada", "Blaise", "Chloé")]
        engine = make_engine(subjects, teachers)

        for subject in subjects:
            engine.auto_generate_subject_sessions(subject)

        self.assertEqual(engine.grid.find_conflicts(), [])

    def test_generation_without_conflict_avoidance_is_deterministic(self) -> None:
        policy = SchedulingPolicy(avoid_conflicts=False)

        def run() -> list[tuple]:
            engine = make_engine([algorithms()])
            report = engine.auto_generate_subject_sessions("Algorithms", policy)
            return [(e.session.slot, e.session.teachers, e.session.room) for e in report.entries]

        first = run()
        self.assertEqual(first, run())
        first_slot = TimeGrid().slots()[0]
        self.assertTrue(all(slot == first_slot for slot, _, _ in first))

    def test_policy_can_skip_teachers_and_rooms(self) -> None:
        engine = make_engine([algorithms()])

        report = engine.auto_generate_subject_sessions(
            "Algorithms", SchedulingPolicy(assign_teachers=False, assign_rooms=False)
        )

        self.assertTrue(all(e.outcome is Outcome.PLACED for e in report.entries))
        self.assertTrue(all(e.session.teachers == () for e in report.entries))
        self.assertTrue(all(e.session.room is None for e in report.entries))

    def test_labs_get_several_distinct_teachers(self) -> None:
        subject = Subject(name="Réseaux", track="Info", sections_cours=1, tp_groups=1,
                          volume_tp=2, nb_enseignants_tp=2)
        teachers = [Teacher(name) for name in ("Ada", "Blaise", "Chloé")]
        engine = make_engine([subject], teachers)

        lab = engine.auto_generate_subject_sessions(subject).entries[-1].session

        self.assertEqual(lab.session_type, SessionType.TP)
        self.assertEqual(len(set(lab.teachers)), 2)
        self.assertEqual(lab.volume, 4)
        self.assertEqual(lab.room, "STP 1")
        for name in lab.teachers:
            self.assertEqual(teacher_share(lab, name), 2)

    def test_lab_short_of_co_teachers_is_partial(self) -> None:
        subject = Subject(name="Réseaux", sections_cours=1, tp_groups=1, nb_enseignants_tp=2)
        engine = make_engine([subject], teachers=[Teacher("Ada")])

        entry = engine.auto_generate_subject_sessions(subject).entries[-1]

        self.assertEqual(entry.outcome, Outcome.PLACED_PARTIAL)
        self.assertEqual(entry.session.teachers, ("Ada",))
        self.assertIn(Shortfall.MISSING_TEACHER, entry.shortfalls)

    def test_preferred_room_of_the_track_is_tried_first(self) -> None:
        rooms = [Room("Amphi A", RoomType.AMPHI), Room("Amphi B", RoomType.AMPHI)]
        engine = make_engine(
            [algorithms()],
            rooms=rooms,
            room_preferences={("Info", SessionType.COURS): "Amphi B"},
        )

        report = engine.auto_generate_subject_sessions("Algorithms")

        self.assertEqual(report.entries[0].session.room, "Amphi B")

    def test_balanced_batch_spreads_the_load(self) -> None:
        subject = Subject(name="Algo", track="Info", sections_cours=2, td_groups=3, tp_groups=2,
                          volume_cours=1.5, volume_td=1.5, volume_tp=1.5)
        teachers = [Teacher(name) for name in ("Ada", "Blaise", "Chloé")]
        engine = make_engine([subject], teachers)

        report = engine.auto_generate_subject_sessions(subject)

        volumes = list(teacher_volumes(teachers, engine.grid.sessions).values())
        total = sum(volumes)
        self.assertEqual(len(report.created_sessions), 12)
        self.assertLessEqual(pvariance(volumes), pvariance([total, 0, 0]))
        self.assertLess(max(volumes), total)

    def test_existing_sessions_can_be_kept(self) -> None:
        engine = make_engine([algorithms()])
        engine.auto_generate_subject_sessions("Algorithms")

        again = engine.auto_generate_subject_sessions("Algorithms", skip_existing=True)

        self.assertEqual([e.outcome for e in again.entries], [Outcome.SKIPPED] * 3)
        self.assertEqual(len(engine.grid), 3)
        self.assertEqual(again.created_sessions, [])


class GenerationErrorsTestCase(unittest.TestCase):
    def test_invalid_subject_is_rejected_before_touching_the_grid(self) -> None:
        subject = Subject(name="Cassé", sections_cours=-1)
        engine = make_engine([subject])

        with self.assertRaises(InvalidSubjectConfiguration):
            engine.auto_generate_subject_sessions(subject)
        self.assertEqual(len(engine.grid), 0)

    def test_unknown_subject_name(self) -> None:
        engine = make_engine([algorithms()])

        with self.assertRaises(UnknownSubjectError):
            engine.auto_generate_subject_sessions("Chimie")

    def test_full_run_skips_broken_subjects(self) -> None:
        broken = Subject(name="Cassé", sections_cours=1, nb_enseignants_tp=0)
        engine = make_engine([algorithms(), broken])

        run = engine.auto_generate_all_sessions()

        self.assertEqual([r.subject.name for r in run.reports], ["Algorithms"])
        self.assertIn("Cassé", run.errors)
        self.assertEqual(run.status, "error")
        self.assertEqual(len(run.created_sessions), 3)


if __name__ == "__main__":
    unittest.main()
