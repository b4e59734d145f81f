import unittest

from program_forge.exercise_classifier import ExerciseClassifier
from program_forge.program_normalizer import (
    DEFAULT_SESSION_INSTRUCTIONS,
    normalize_exercise,
    normalize_program,
    normalize_session,
)
from program_forge.program_types import TrainingProgram


class FixedClassifier(ExerciseClassifier):
    def infer_category(self, name):
        return "isolation"

    def infer_primary_muscles(self, name):
        return ["calves"]

    def infer_equipment(self, name):
        return ["cable"]

    def infer_tier(self, name):
        return "Primary"


class ExplodingClassifier(FixedClassifier):
    def infer_tier(self, name):
        raise RuntimeError("classifier offline")


class NormalizeProgramTests(unittest.TestCase):
    def test_day_keyed_squat_session(self):
        program = normalize_program(
            {"day1": {"exercises": [{"name": "Barbell Back Squat", "sets": 4, "reps": "5"}]}}
        )

        self.assertEqual(len(program.sessions), 1)
        session = program.sessions[0]
        self.assertFalse(session.is_rest_day)
        self.assertEqual(session.name, "Day 1 Workout")
        self.assertEqual(session.day_of_week, "Monday")
        self.assertEqual(session.estimated_duration, 15)
        self.assertEqual(session.instructions, DEFAULT_SESSION_INSTRUCTIONS)

        squat = session.exercises[0]
        self.assertEqual(squat.tier, "Anchor")
        self.assertTrue(squat.is_anchor_lift)
        self.assertEqual(squat.category, "compound_movement")
        self.assertEqual(squat.equipment, ["barbell"])
        self.assertEqual(squat.primary_muscles, ["quads", "glutes"])
        self.assertEqual(squat.sets, 4)
        self.assertEqual(squat.reps, "5")
        self.assertEqual(squat.rest, "60-90 seconds")

    def test_never_raises_on_unusable_input(self):
        circular = {}
        circular["day1"] = circular
        circular["exercises"] = [circular]

        inputs = [
            None,
            0,
            3.5,
            True,
            "day1",
            [],
            [{"day1": {}}],
            {"__proto__": {"day1": {"exercises": [{"name": "Squat"}]}}},
            {"constructor": {"prototype": {"polluted": True}}},
            {"phases": "not a list", "workouts": {"a": 1}},
            {"phases": [None, 3, {"weeks": [None, {"days": "x"}]}]},
            circular,
        ]
        for raw in inputs:
            with self.subTest(raw=type(raw).__name__):
                program = normalize_program(raw)
                self.assertIsInstance(program, TrainingProgram)
                program.model_dump(by_alias=True)

    def test_non_object_input_returns_empty_program(self):
        program = normalize_program(["day1"])
        self.assertEqual(program.session_count(), 0)
        self.assertEqual(program.name, "Generated Training Program")

    def test_classifier_failure_returns_empty_program(self):
        program = normalize_program(
            {"day1": {"exercises": [{"name": "Squat"}]}},
            classifier=ExplodingClassifier(),
        )
        self.assertEqual(program.session_count(), 0)

    def test_day_keys_are_ordered_and_unknown_keys_ignored(self):
        program = normalize_program(
            {
                "reasoning": "Upper/lower split",
                "dayOff": {"exercises": [{"name": "Squat"}]},
                "day10": {"exercises": [{"name": "Bench Press"}]},
                "Day 2": {"exercises": [{"name": "Back Squat"}]},
            }
        )
        self.assertEqual([s.day_number for s in program.sessions], [2, 10])
        self.assertEqual([s.day_of_week for s in program.sessions], ["Tuesday", "Wednesday"])

    def test_rest_day_shapes_are_equivalent(self):
        shapes = [
            {"exercises": []},
            {},
            None,
            {"exercises": "squats"},
            {"exercises": [1, "x", None]},
            {"isRestDay": True, "exercises": [{"name": "Squat"}]},
        ]
        expected = normalize_session({"exercises": []}, day_number=1).model_dump(by_alias=True)
        self.assertTrue(expected["isRestDay"])
        self.assertEqual(expected["exercises"], [])
        self.assertEqual(expected["estimatedDuration"], 0)
        self.assertEqual(expected["name"], "Rest Day")

        for day in shapes:
            with self.subTest(day=day):
                program = normalize_program({"day1": day})
                self.assertEqual(program.sessions[0].model_dump(by_alias=True), expected)

    def test_phased_program(self):
        squat = {"name": "Barbell Back Squat", "sets": 4, "reps": "5"}
        raw = {
            "programName": "Lower Block",
            "durationWeeksTotal": 2,
            "periodizationModel": "Block",
            "phases": [
                {
                    "phaseName": "Volume Block",
                    "phaseType": "accumulation",
                    "durationWeeks": 2,
                    "weeks": [
                        {
                            "weekNumber": 1,
                            "days": [
                                {"dayOfWeek": "monday", "focus": "Lower Strength", "exercises": [squat]},
                                {"dayOfWeek": "Tuesday", "isRestDay": True, "exercises": []},
                            ],
                        },
                        {
                            "weekNumber": 2,
                            "intensityFocus": "Deload week",
                            "days": [{"exercises": [squat]}],
                        },
                    ],
                },
                {"phaseName": "Peak Week", "weeks": []},
            ],
        }

        program = normalize_program(raw)

        self.assertEqual(program.name, "Lower Block")
        self.assertEqual(program.duration_weeks_total, 2)
        self.assertEqual(program.periodization_model, "Block")
        self.assertEqual(program.sessions, [])

        block = program.phases[0]
        self.assertEqual(block.name, "Volume Block")
        self.assertEqual(block.phase_type, "Accumulation")
        self.assertEqual(block.duration_weeks, 2)
        self.assertEqual([w.week_number for w in block.weeks], [1, 2])
        self.assertFalse(block.weeks[0].is_deload)
        self.assertTrue(block.weeks[1].is_deload)

        monday, tuesday = block.weeks[0].sessions
        self.assertEqual(monday.day_of_week, "Monday")
        self.assertEqual(monday.training_focus, "strength")
        self.assertEqual(monday.week_number, 1)
        self.assertTrue(tuesday.is_rest_day)
        self.assertEqual(tuesday.day_of_week, "Tuesday")

        self.assertEqual(program.phases[1].phase_type, "Realization")
        self.assertEqual(program.session_count(), 3)

    def test_workouts_list_with_main_exercises(self):
        program = normalize_program(
            {
                "workouts": [
                    {
                        "workoutName": "Upper A",
                        "focus": "Hypertrophy - Upper",
                        "mainExercises": [{"exerciseName": "Bench Press", "sets": "4"}],
                    }
                ]
            }
        )
        session = program.sessions[0]
        self.assertEqual(session.name, "Upper A")
        self.assertEqual(session.training_focus, "hypertrophy")
        self.assertEqual(session.exercises[0].name, "Bench Press")
        self.assertEqual(session.exercises[0].sets, 3)
        self.assertEqual(session.exercises[0].tier, "Anchor")

    def test_session_duration_sources(self):
        two = [{"name": "Squat"}, {"name": "Lunge"}]
        self.assertEqual(normalize_session({"exercises": two}, 1).estimated_duration, 30)
        self.assertEqual(normalize_session({"exercises": two, "duration": 75}, 1).estimated_duration, 75)
        self.assertEqual(
            normalize_session({"exercises": two, "estimatedDuration": 45}, 1).estimated_duration, 45
        )
        self.assertEqual(
            normalize_session({"exercises": two, "duration": -5}, 1).estimated_duration, 30
        )

    def test_persisted_form_reads_back(self):
        program = normalize_program(
            {"day1": {"exercises": [{"name": "Deadlift", "secondaryMuscles": ["Lats"]}]}, "day2": {}}
        )
        document = program.model_dump(by_alias=True)
        deadlift = document["sessions"][0]["exercises"][0]
        self.assertTrue(deadlift["isAnchorLift"])
        self.assertEqual(deadlift["secondaryMuscles"], ["back"])
        self.assertTrue(document["sessions"][1]["isRestDay"])
        self.assertEqual(TrainingProgram.model_validate(document), program)

    def test_oversized_numbers_fall_back_to_defaults(self):
        huge = 10 ** 400
        program = normalize_program(
            {
                "durationWeeksTotal": huge,
                "day1": {
                    "estimatedDuration": huge,
                    "exercises": [
                        {"name": "Squat", "sets": 4},
                        {"name": "Curl", "sets": huge, "load": huge},
                    ],
                },
            }
        )
        self.assertEqual(len(program.sessions), 1)
        self.assertIsNone(program.duration_weeks_total)
        session = program.sessions[0]
        self.assertEqual(session.estimated_duration, 30)
        self.assertEqual([e.sets for e in session.exercises], [4, 3])
        self.assertEqual(session.exercises[1].load, "")


class NormalizeExerciseTests(unittest.TestCase):
    def test_defaults(self):
        exercise = normalize_exercise({})
        self.assertEqual(exercise.name, "Unknown Exercise")
        self.assertEqual(exercise.sets, 3)
        self.assertEqual(exercise.reps, "8-12")
        self.assertEqual(exercise.rest, "60-90 seconds")
        self.assertEqual(exercise.tier, "Secondary")

    def test_sets_coercion(self):
        cases = [
            (4.4, 4),
            (4.6, 5),
            (0.3, 1),
            (0, 3),
            (-2, 3),
            (True, 3),
            ("4", 3),
            (float("nan"), 3),
            (float("inf"), 3),
            (None, 3),
        ]
        for value, expected in cases:
            with self.subTest(sets=value):
                self.assertEqual(normalize_exercise({"name": "Row", "sets": value}).sets, expected)

    def test_text_fields(self):
        self.assertEqual(normalize_exercise({"name": "Row", "reps": 10}).reps, "8-12")
        self.assertEqual(normalize_exercise({"name": "Row", "reps": "   "}).reps, "8-12")
        self.assertEqual(normalize_exercise({"name": "Row", "repRange": "6-8"}).reps, "6-8")
        self.assertEqual(normalize_exercise({"name": "Row", "load": 100}).load, "100")
        self.assertEqual(normalize_exercise({"name": "Row", "load": True}).load, "")
        self.assertEqual(normalize_exercise({"name": "Row", "weight": "80kg"}).load, "80kg")
        self.assertEqual(
            normalize_exercise({"name": "Row", "restBetweenSets": "2 minutes"}).rest, "2 minutes"
        )
        self.assertEqual(normalize_exercise({"name": 42, "exerciseName": "Dips"}).name, "Dips")

    def test_explicit_metadata_wins_over_inference(self):
        exercise = normalize_exercise(
            {
                "name": "Goblet Squat",
                "tier": "primary",
                "category": "Isolation",
                "primaryMuscles": ["Quadriceps", 5],
                "equipment": ["Dumbbells", "Bench"],
            }
        )
        self.assertEqual(exercise.tier, "Primary")
        self.assertEqual(exercise.category, "isolation")
        self.assertEqual(exercise.primary_muscles, ["quads"])
        self.assertEqual(exercise.equipment, ["dumbbell", "other"])

    def test_invalid_explicit_tier_is_inferred(self):
        self.assertEqual(normalize_exercise({"name": "Goblet Squat", "tier": "Boss"}).tier, "Anchor")

    def test_custom_classifier_strategy(self):
        exercise = normalize_exercise({"name": "Anything"}, classifier=FixedClassifier())
        self.assertEqual(exercise.tier, "Primary")
        self.assertEqual(exercise.category, "isolation")
        self.assertEqual(exercise.primary_muscles, ["calves"])
        self.assertEqual(exercise.equipment, ["cable"])


if __name__ == "__main__":
    unittest.main()
