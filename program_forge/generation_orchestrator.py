"""
Asynchronous lifecycle of program generation requests.

create_program() stores a pending record and returns at once. The actual
work (model call, normalization, validation, persistence) runs in
run_generation(), dispatched off the caller's request.
"""

import json
import threading
import time
import uuid

from loguru import logger

from program_forge.config import DEFAULT_CONFIG
from program_forge.errors import (
    ErrorCode,
    GenerationError,
    LeaseConflictError,
    ProfileValidationError,
    TransientGenerationError,
    sanitize_error,
)
from program_forge.generation_store import PENDING, Lease
from program_forge.guardian_validator import validate_program
from program_forge.guidelines import (
    program_duration_weeks,
    select_guidelines,
    select_periodization_model,
)
from program_forge.onboarding import profile_snapshot, validate_onboarding_profile
from program_forge.program_normalizer import normalize_program
from program_forge.retry_policy import RetryPolicy


RESPONSE_SHAPE = """{
  "programName": "string",
  "description": "string",
  "durationWeeksTotal": 6,
  "periodizationModel": "string",
  "phases": [
    {
      "phaseName": "string",
      "phaseType": "Accumulation | Intensification | Realization | Deload",
      "durationWeeks": 3,
      "weeks": [
        {
          "weekNumber": 1,
          "isDeload": false,
          "days": [
            {
              "dayOfWeek": "Monday",
              "name": "string",
              "focus": "string",
              "estimatedDuration": 60,
              "exercises": [
                {
                  "name": "Barbell Back Squat",
                  "tier": "Anchor | Primary | Secondary | Accessory",
                  "sets": 4,
                  "reps": "5",
                  "load": "75% 1RM",
                  "rpe": "7",
                  "rest": "3 minutes",
                  "primaryMuscles": ["quads", "glutes"],
                  "secondaryMuscles": ["hamstrings"],
                  "equipment": ["barbell"],
                  "rationale": "string"
                }
              ]
            },
            {"dayOfWeek": "Tuesday", "isRestDay": true, "exercises": []}
          ]
        }
      ]
    }
  ]
}"""


def dispatch_in_thread(func, *args):
    """Run func(*args) on a daemon thread, one per generation record."""
    thread = threading.Thread(target=func, args=args, daemon=True, name=f"generation-{args[0]}")
    thread.start()
    return thread


def record_view(record):
    """Caller-facing view of a stored generation record."""
    return {
        "programId": record["id"],
        "userId": record["user_id"],
        "status": record["status"],
        "version": record["version"],
        "error": record.get("error"),
        "program": record.get("program_content"),
        "validationIssues": record.get("validation_issues"),
        "isValid": record.get("is_valid"),
        "metadata": record.get("generation_metadata"),
        "createdAt": record["created_at"],
        "updatedAt": record["updated_at"],
    }


class GenerationOrchestrator:
    """Creates generation records and drives them to a terminal status."""

    def __init__(
        self,
        store,
        model_client,
        config=None,
        dispatcher=None,
        classifier=None,
        retry_policy=None,
        sleep=time.sleep,
    ):
        """
        Args:
            store: GenerationStore holding the records
            model_client: Object with generate_program(prompt) -> parsed JSON
            config: Full configuration dictionary
            dispatcher: Callable(func, *args) that runs work off the request
            classifier: ExerciseClassifier for the normalizer (default keyword table)
            retry_policy: RetryPolicy (default built from config)
            sleep: Sleep function used between attempts
        """
        self.store = store
        self.model_client = model_client
        self.config = config or DEFAULT_CONFIG
        self.dispatcher = dispatcher or dispatch_in_thread
        self.classifier = classifier
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.sleep = sleep
        self.stale_after_seconds = int(
            (self.config.get("generation") or {}).get("stale_after_seconds", 900)
        )

    def create_program(self, user_id, profile, dispatch=None):
        """
        Store a pending generation record and schedule the generation.

        Returns:
            {"programId": str, "status": "pending"}

        Raises:
            ProfileValidationError: the profile failed basic shape checks
        """
        errors = validate_onboarding_profile(profile)
        if not isinstance(user_id, str) or not user_id.strip():
            errors.insert(0, {"field": "userId", "message": "userId is required"})
        if errors:
            raise ProfileValidationError(errors)

        record = self.store.create_record(user_id.strip(), profile_snapshot(profile))
        (dispatch or self.dispatcher)(self.run_generation, record["id"])
        return {"programId": record["id"], "status": record["status"]}

    def trigger_generation(self, program_id, dispatch=None):
        """
        Re-trigger generation for an existing record.

        Only a pending record is dispatched. Processing, completed and failed
        records are reported back unchanged with accepted=False.
        """
        record = self.store.require_record(program_id)
        if record["status"] == PENDING:
            (dispatch or self.dispatcher)(self.run_generation, program_id)
            return {"programId": program_id, "status": PENDING, "accepted": True}

        logger.info(f"Ignoring trigger for {program_id}: status is {record['status']}")
        return {"programId": program_id, "status": record["status"], "accepted": False}

    def get_program(self, program_id):
        return record_view(self.store.require_record(program_id))

    def run_generation(self, program_id):
        """
        Claim a pending record and carry it to completed or failed.

        A record that is not pending (already claimed, finished or missing)
        is left untouched.
        """
        lease = self.store.claim_for_processing(program_id)
        if lease is None:
            logger.info(f"Skipping generation for {program_id}: record is not pending")
            return self.store.get_record(program_id)

        record = self.store.get_record(program_id)
        profile = record.get("onboarding_snapshot") or {}
        metadata = {
            "requestId": uuid.uuid4().hex,
            "model": getattr(self.model_client, "model", None),
            "attempts": 0,
        }

        try:
            return self._generate(lease, profile, metadata)
        except LeaseConflictError as exc:
            logger.warning(f"Lost lease on {program_id}: {exc}")
        except Exception:
            logger.exception(
                f"Unexpected failure generating {program_id} (request {metadata['requestId']})"
            )
            try:
                return self._fail(lease, ErrorCode.INTERNAL_ERROR, metadata)
            except LeaseConflictError as exc:
                logger.warning(f"Lost lease on {program_id} while recording failure: {exc}")
        return self.store.get_record(program_id)

    def _generate(self, lease, profile, metadata):
        goal = profile.get("primaryFocus")
        level = profile.get("experienceLevel")
        selection = select_guidelines(goal, level)
        periodization = select_periodization_model(goal, level)
        duration_weeks = program_duration_weeks(goal)
        metadata.update(
            {
                "guidelineKey": f"{selection.goal}/{selection.level}",
                "guidelineMatch": selection.match,
                "periodizationModel": periodization,
                "plannedDurationWeeks": duration_weeks,
            }
        )
        prompt = self._build_prompt(profile, selection.text, periodization, duration_weeks)

        max_attempts = self.retry_policy.max_attempts
        last_code = ErrorCode.INTERNAL_ERROR
        schema_errors = None

        for attempt in range(1, max_attempts + 1):
            metadata["attempts"] = attempt
            started = time.monotonic()
            try:
                raw = self.model_client.generate_program(prompt)
            except TransientGenerationError as exc:
                last_code = exc.code
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} for {lease.program_id} failed "
                    f"with {exc.code}: {exc.message}"
                )
            except GenerationError as exc:
                logger.error(f"Generation for {lease.program_id} rejected with {exc.code}: {exc.message}")
                return self._fail(lease, exc.code, metadata)
            else:
                logger.info(
                    f"Attempt {attempt}/{max_attempts} for {lease.program_id} returned "
                    f"in {time.monotonic() - started:.1f}s"
                )
                program = normalize_program(raw, classifier=self.classifier)
                if not program.periodization_model:
                    program.periodization_model = periodization
                result = validate_program(program, profile)

                if not result.has_critical:
                    logger.info(f"{lease.program_id}: {result.summary}")
                    return self.store.complete(
                        lease,
                        program.model_dump(by_alias=True),
                        [issue.to_dict() for issue in result.issues],
                        result.is_valid,
                        metadata,
                    )

                last_code = ErrorCode.SCHEMA_VALIDATION_FAILED
                schema_errors = [issue.to_dict() for issue in result.errors]
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} for {lease.program_id} produced an "
                    f"unusable program: {[issue['message'] for issue in schema_errors]}"
                )

            if self.retry_policy.should_retry(attempt):
                self.sleep(self.retry_policy.delay_for(attempt))

        detail = {"attempts": max_attempts}
        if last_code == ErrorCode.SCHEMA_VALIDATION_FAILED:
            detail["errors"] = schema_errors
        return self._fail(lease, last_code, metadata, detail)

    def _fail(self, lease, code, metadata, detail=None):
        error = sanitize_error(code, metadata["requestId"], detail)
        return self.store.fail(lease, error, metadata)

    def sweep_abandoned(self, older_than_seconds=None):
        """
        Fail processing records whose claim has gone stale.

        Returns:
            List of program ids moved to failed
        """
        age = self.stale_after_seconds if older_than_seconds is None else older_than_seconds
        swept = []
        for record in self.store.find_stale_processing(age):
            lease = Lease(record["id"], record["version"], record["lease_token"])
            error = sanitize_error(ErrorCode.GENERATION_ABANDONED, uuid.uuid4().hex)
            try:
                self.store.fail(lease, error, record.get("generation_metadata"))
            except LeaseConflictError:
                logger.info(f"{record['id']} finished before it could be swept")
                continue
            logger.warning(f"Marked abandoned generation {record['id']} as failed")
            swept.append(record["id"])
        return swept

    def _build_prompt(self, profile, guideline_text, periodization_model, duration_weeks):
        records = profile.get("personalRecords") or {}
        records_line = ", ".join(
            f"{lift}: {value} kg" for lift, value in records.items() if value is not None
        ) or "not provided"
        priorities = ", ".join(profile.get("priorityMuscles") or []) or "none declared"
        extra = profile.get("additionalInfo")
        extra_block = f"\nADDITIONAL INFO:\n{json.dumps(extra, sort_keys=True)}\n" if extra else ""

        return f"""You are an expert strength coach designing a periodized training program.

ATHLETE PROFILE:
- Experience level: {profile.get('experienceLevel')}
- Primary focus: {profile.get('primaryFocus')}
- Session duration: {profile.get('sessionDuration')} minutes
- Training days per week: {profile.get('trainingDaysPerWeek') or 'coach decides (3-5)'}
- Equipment access: {profile.get('equipmentAccess', 'full_gym')}
- Personal records: {records_line}
- Priority muscles: {priorities}
{extra_block}
PROGRAM PLAN:
- Periodization model: {periodization_model}
- Total duration: {duration_weeks} weeks

{guideline_text}

RULES:
- Every training day starts with exactly one Anchor-tier exercise.
- Phase durationWeeks must equal the number of weeks listed in the phase.
- Number weeks sequentially within each phase.
- Include rest days explicitly with "isRestDay": true and an empty exercise list.
- Weekly sets per muscle group must stay at or below MRV for this experience level.

Return ONLY a JSON object with this shape. No explanation, no markdown.
{RESPONSE_SHAPE}
"""
