import json
import os
import random
import tempfile
import threading
import unittest

from program_forge.errors import (
    PUBLIC_MESSAGES,
    ErrorCode,
    GenerationError,
    ProfileValidationError,
    RecordNotFoundError,
    TransientGenerationError,
)
from program_forge.generation_orchestrator import GenerationOrchestrator, dispatch_in_thread
from program_forge.generation_store import GenerationStore
from program_forge.retry_policy import RetryPolicy


PROFILE = {
    "experienceLevel": "intermediate",
    "primaryFocus": "strength",
    "sessionDuration": 60,
    "equipmentAccess": "full_gym",
    "personalRecords": {"squat": 140, "bench": 100},
}

VALID_PROGRAM = {
    "programName": "Strength Base",
    "day1": {
        "focus": "Lower Strength",
        "exercises": [
            {"name": "Barbell Back Squat", "sets": 4, "reps": "5"},
            {"name": "Walking Lunge", "sets": 3, "reps": "10"},
        ],
    },
    "day2": {"exercises": []},
}

NO_ANCHOR_PROGRAM = {"day1": {"exercises": [{"name": "Push-up", "sets": 3, "reps": "12"}]}}


class FakeModelClient:
    model = "fake-model"

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    def generate_program(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = GenerationStore(os.path.join(self._tmp.name, "programs.db"))
        self.store.init_schema()
        self.dispatched = []
        self.sleeps = []

    def tearDown(self):
        self.store.close()
        self._tmp.cleanup()

    def _orchestrator(self, responses):
        self.model = FakeModelClient(responses)
        return GenerationOrchestrator(
            self.store,
            self.model,
            dispatcher=lambda func, *args: self.dispatched.append((func, args)),
            retry_policy=RetryPolicy(max_attempts=3, rng=random.Random(7)),
            sleep=self.sleeps.append,
        )

    def _create_and_run(self, orchestrator, profile=PROFILE):
        created = orchestrator.create_program("user-1", profile)
        orchestrator.run_generation(created["programId"])
        return orchestrator.get_program(created["programId"])


class CreateProgramTests(OrchestratorTestCase):
    def test_returns_pending_without_calling_the_model(self):
        orchestrator = self._orchestrator([VALID_PROGRAM])
        created = orchestrator.create_program("user-1", PROFILE)

        self.assertEqual(created["status"], "pending")
        self.assertEqual(self.model.prompts, [])
        self.assertEqual(len(self.dispatched), 1)
        func, args = self.dispatched[0]
        self.assertEqual(args, (created["programId"],))
        self.assertEqual(orchestrator.get_program(created["programId"])["status"], "pending")

    def test_invalid_profile_creates_nothing(self):
        orchestrator = self._orchestrator([])
        with self.assertRaises(ProfileValidationError) as ctx:
            orchestrator.create_program("user-1", {"experienceLevel": "beginner"})

        fields = {error["field"] for error in ctx.exception.errors}
        self.assertIn("primaryFocus", fields)
        self.assertIn("sessionDuration", fields)
        self.assertEqual(sum(self.store.count_summary().values()), 0)
        self.assertEqual(self.dispatched, [])

    def test_user_id_is_required(self):
        orchestrator = self._orchestrator([])
        with self.assertRaises(ProfileValidationError) as ctx:
            orchestrator.create_program("  ", PROFILE)
        self.assertEqual(ctx.exception.errors[0]["field"], "userId")

    def test_snapshot_defaults_equipment_access(self):
        orchestrator = self._orchestrator([])
        profile = dict(PROFILE)
        del profile["equipmentAccess"]
        created = orchestrator.create_program("user-1", profile)
        record = self.store.get_record(created["programId"])
        self.assertEqual(record["onboarding_snapshot"]["equipmentAccess"], "full_gym")


class RunGenerationTests(OrchestratorTestCase):
    def test_success(self):
        view = self._create_and_run(self._orchestrator([VALID_PROGRAM]))

        self.assertEqual(view["status"], "completed")
        self.assertTrue(view["isValid"])
        self.assertEqual(view["validationIssues"], [])
        self.assertEqual(view["program"]["name"], "Strength Base")
        self.assertEqual(len(view["program"]["sessions"]), 2)
        self.assertEqual(view["program"]["sessions"][0]["exercises"][0]["tier"], "Anchor")
        self.assertEqual(view["program"]["periodizationModel"], "Strength-Focused Block Periodization")
        self.assertIsNone(view["error"])

        metadata = view["metadata"]
        self.assertEqual(metadata["attempts"], 1)
        self.assertEqual(metadata["model"], "fake-model")
        self.assertEqual(metadata["guidelineKey"], "strength/intermediate")
        self.assertEqual(metadata["guidelineMatch"], "exact")
        self.assertEqual(metadata["plannedDurationWeeks"], 6)
        self.assertTrue(metadata["requestId"])
        self.assertEqual(
            self.store.status_history(view["programId"]), ["pending", "processing", "completed"]
        )

    def test_prompt_carries_profile_and_guidelines(self):
        profile = dict(PROFILE, primaryFocus="hypertrophy", priorityMuscles=["chest"])
        self._create_and_run(self._orchestrator([VALID_PROGRAM]), profile)

        prompt = self.model.prompts[0]
        self.assertIn("HYPERTROPHY / INTERMEDIATE", prompt)
        self.assertIn("VOLUME FRAMEWORK", prompt)
        self.assertIn("squat: 140 kg", prompt)
        self.assertIn("Priority muscles: chest", prompt)
        self.assertIn("Hypertrophy-Focused Block Periodization", prompt)

    def test_high_issues_are_persisted_with_completed_program(self):
        view = self._create_and_run(self._orchestrator([NO_ANCHOR_PROGRAM]))

        self.assertEqual(view["status"], "completed")
        self.assertFalse(view["isValid"])
        severities = [issue["severity"] for issue in view["validationIssues"]]
        self.assertIn("HIGH", severities)
        self.assertIn("suggestedFix", view["validationIssues"][0])

    def test_warnings_are_persisted_on_a_valid_program(self):
        program = {"day1": {"exercises": [{"name": "Barbell Back Squat", "sets": 9, "reps": "5"}]}}
        view = self._create_and_run(self._orchestrator([program]))

        self.assertTrue(view["isValid"])
        self.assertEqual([issue["severity"] for issue in view["validationIssues"]], ["MEDIUM"])
        self.assertIn("prescribes 9 sets", view["validationIssues"][0]["message"])

    def test_transient_failure_is_retried(self):
        orchestrator = self._orchestrator(
            [TransientGenerationError(ErrorCode.MODEL_TIMEOUT, "read timed out"), VALID_PROGRAM]
        )
        view = self._create_and_run(orchestrator)

        self.assertEqual(view["status"], "completed")
        self.assertEqual(view["metadata"]["attempts"], 2)
        self.assertEqual(len(self.model.prompts), 2)
        self.assertEqual(len(self.sleeps), 1)
        self.assertTrue(0.1 <= self.sleeps[0] <= 0.625)

    def test_exhausted_retries_fail_with_sanitized_error(self):
        raw = "connection reset by peer at 10.0.0.1"
        orchestrator = self._orchestrator(
            [TransientGenerationError(ErrorCode.MODEL_NETWORK_ERROR, raw) for _ in range(3)]
        )
        view = self._create_and_run(orchestrator)

        self.assertEqual(view["status"], "failed")
        self.assertIsNone(view["program"])
        error = view["error"]
        self.assertEqual(error["code"], ErrorCode.MODEL_NETWORK_ERROR)
        self.assertEqual(error["message"], PUBLIC_MESSAGES[ErrorCode.MODEL_NETWORK_ERROR])
        self.assertEqual(error["detail"]["attempts"], 3)
        self.assertEqual(error["detail"]["requestId"], view["metadata"]["requestId"])
        self.assertNotIn(raw, json.dumps(error))
        self.assertEqual(len(self.model.prompts), 3)
        self.assertEqual(len(self.sleeps), 2)
        self.assertEqual(
            self.store.status_history(view["programId"]), ["pending", "processing", "failed"]
        )

    def test_rejected_request_is_not_retried(self):
        orchestrator = self._orchestrator(
            [GenerationError(ErrorCode.MODEL_REQUEST_REJECTED, "invalid x-api-key"), VALID_PROGRAM]
        )
        view = self._create_and_run(orchestrator)

        self.assertEqual(view["status"], "failed")
        self.assertEqual(view["error"]["code"], ErrorCode.MODEL_REQUEST_REJECTED)
        self.assertEqual(len(self.model.prompts), 1)
        self.assertEqual(self.sleeps, [])

    def test_unusable_program_is_retried_then_failed(self):
        orchestrator = self._orchestrator([{}, {"notes": "no days"}, {"day": "1"}])
        view = self._create_and_run(orchestrator)

        self.assertEqual(view["status"], "failed")
        self.assertEqual(view["error"]["code"], ErrorCode.SCHEMA_VALIDATION_FAILED)
        messages = [issue["message"] for issue in view["error"]["detail"]["errors"]]
        self.assertEqual(messages, ["Program contains no sessions"])

    def test_unusable_program_then_valid(self):
        view = self._create_and_run(self._orchestrator([{}, VALID_PROGRAM]))
        self.assertEqual(view["status"], "completed")
        self.assertEqual(view["metadata"]["attempts"], 2)

    def test_unexpected_error_is_not_leaked(self):
        view = self._create_and_run(self._orchestrator([RuntimeError("db password is hunter2")]))

        self.assertEqual(view["status"], "failed")
        self.assertEqual(view["error"]["code"], ErrorCode.INTERNAL_ERROR)
        self.assertNotIn("hunter2", json.dumps(view["error"]))

    def test_finished_record_is_not_regenerated(self):
        orchestrator = self._orchestrator([VALID_PROGRAM, VALID_PROGRAM])
        view = self._create_and_run(orchestrator)

        orchestrator.run_generation(view["programId"])

        self.assertEqual(len(self.model.prompts), 1)
        self.assertEqual(orchestrator.get_program(view["programId"])["version"], view["version"])

    def test_run_on_missing_record_is_a_no_op(self):
        orchestrator = self._orchestrator([])
        self.assertIsNone(orchestrator.run_generation("missing"))
        self.assertEqual(self.model.prompts, [])

    def test_abandoned_generation_cannot_overwrite_failure(self):
        orchestrator = self._orchestrator([])

        def swept_mid_flight():
            orchestrator.sweep_abandoned(0)
            return VALID_PROGRAM

        self.model.responses.append(swept_mid_flight)
        view = self._create_and_run(orchestrator)

        self.assertEqual(view["status"], "failed")
        self.assertEqual(view["error"]["code"], ErrorCode.GENERATION_ABANDONED)
        self.assertIsNone(view["program"])
        self.assertEqual(
            self.store.status_history(view["programId"]), ["pending", "processing", "failed"]
        )


class TriggerTests(OrchestratorTestCase):
    def test_pending_record_is_dispatched(self):
        orchestrator = self._orchestrator([VALID_PROGRAM])
        record = self.store.create_record("user-1", PROFILE)

        outcome = orchestrator.trigger_generation(record["id"])

        self.assertEqual(outcome, {"programId": record["id"], "status": "pending", "accepted": True})
        self.assertEqual(len(self.dispatched), 1)

    def test_processing_record_is_not_dispatched_again(self):
        orchestrator = self._orchestrator([VALID_PROGRAM])
        record = self.store.create_record("user-1", PROFILE)
        self.store.claim_for_processing(record["id"])

        outcome = orchestrator.trigger_generation(record["id"])
        orchestrator.run_generation(record["id"])

        self.assertFalse(outcome["accepted"])
        self.assertEqual(outcome["status"], "processing")
        self.assertEqual(self.dispatched, [])
        self.assertEqual(self.model.prompts, [])

    def test_missing_record(self):
        with self.assertRaises(RecordNotFoundError):
            self._orchestrator([]).trigger_generation("missing")


class SweepTests(OrchestratorTestCase):
    def test_sweep_marks_stale_processing_records_failed(self):
        orchestrator = self._orchestrator([])
        stale = self.store.create_record("user-1", PROFILE)
        untouched = self.store.create_record("user-1", PROFILE)
        self.store.claim_for_processing(stale["id"])

        self.assertEqual(orchestrator.sweep_abandoned(3600), [])
        self.assertEqual(orchestrator.sweep_abandoned(0), [stale["id"]])

        self.assertEqual(self.store.get_record(stale["id"])["error"]["code"], ErrorCode.GENERATION_ABANDONED)
        self.assertEqual(self.store.get_record(untouched["id"])["status"], "pending")


class DispatchTests(unittest.TestCase):
    def test_dispatch_in_thread_runs_the_work(self):
        done = threading.Event()
        seen = []

        def work(program_id):
            seen.append(program_id)
            done.set()

        thread = dispatch_in_thread(work, "abc")
        self.assertTrue(done.wait(5))
        thread.join(5)
        self.assertEqual(seen, ["abc"])
        self.assertTrue(thread.daemon)


if __name__ == "__main__":
    unittest.main()
