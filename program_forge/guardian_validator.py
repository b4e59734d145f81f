"""
Guardian validation for generated training programs.

Validation runs as an ordered pipeline of pure stage functions:

    schema -> scientific -> structural -> equipment

Each stage takes the program and a ValidationContext and returns a list of
ValidationIssue. The schema stage works on the persisted dict form and, if
it finds anything, stops the pipeline. The result never changes after it is
returned.
"""

from collections import namedtuple
from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import ValidationError

from program_forge.exercise_classifier import TIERS
from program_forge.program_types import TrainingProgram
from program_forge.volume_landmarks import (
    canonical_muscle_group,
    get_volume_landmarks,
    normalize_experience_level,
)


SCHEMA = "SCHEMA"
SCIENTIFIC = "SCIENTIFIC"
STRUCTURAL = "STRUCTURAL"
OPTIMIZATION = "OPTIMIZATION"

CRITICAL = "CRITICAL"
HIGH = "HIGH"
MEDIUM = "MEDIUM"

BLOCKING_SEVERITIES = (CRITICAL, HIGH)

EQUIPMENT_ACCESS_TIERS = ("full_gym", "dumbbells_only", "bodyweight_only")
ALLOWED_EQUIPMENT = {
    "full_gym": None,
    "dumbbells_only": {"dumbbell", "bodyweight", "other"},
    "bodyweight_only": {"bodyweight", "other"},
}

DEFAULT_PRIORITY_MUSCLES = ("chest", "back", "quads")
NON_SPECIFIC_MUSCLES = {"full_body"}
SECONDARY_MUSCLE_WEIGHT = 0.5

MAX_SETS_PER_EXERCISE = 8
MIN_SETS_NON_ACCESSORY = 2
MAX_EXERCISES_MIXED_EQUIPMENT = 6

CANONICAL_PHASE_SEQUENCES = [
    ("Accumulation", "Intensification", "Realization"),
    ("Accumulation", "Deload"),
    ("Accumulation", "Intensification", "Deload"),
    ("Accumulation", "Accumulation", "Intensification", "Deload"),
]

ANCHOR_FIX = "Designate a compound movement as Anchor in position 1."
SCHEMA_FIX = "Regenerate program with correct schema structure"


@dataclass(frozen=True)
class ValidationIssue:
    type: str
    severity: str
    message: str
    location: Optional[str] = None
    suggested_fix: Optional[str] = None

    def to_dict(self):
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "location": self.location,
            "suggestedFix": self.suggested_fix,
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationIssue, ...] = ()

    @property
    def has_critical(self):
        return any(issue.severity == CRITICAL for issue in self.errors)

    @property
    def issues(self):
        return self.errors + self.warnings

    @property
    def summary(self):
        return (
            f"Validation: {len(self.errors)} error(s), {len(self.warnings)} warning(s)."
        )

    def to_dict(self):
        return {
            "isValid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


ValidationContext = namedtuple(
    "ValidationContext", ["experience_level", "equipment_access", "priority_muscles"]
)

TrainingWeek = namedtuple("TrainingWeek", ["label", "phase_index", "phase", "week", "sessions"])


def build_validation_context(profile=None):
    """Derive the validator's view of an onboarding profile."""
    profile = profile if isinstance(profile, dict) else {}

    access = profile.get("equipmentAccess")
    if access not in EQUIPMENT_ACCESS_TIERS:
        access = "full_gym"

    declared = profile.get("priorityMuscles")
    if isinstance(declared, list):
        priorities = tuple(
            canonical_muscle_group(m) for m in declared if isinstance(m, str) and m.strip()
        )
    else:
        focus = str(profile.get("primaryFocus") or "").lower()
        if "hypertrophy" in focus or "muscle" in focus:
            priorities = DEFAULT_PRIORITY_MUSCLES
        else:
            priorities = ()

    return ValidationContext(
        experience_level=normalize_experience_level(profile.get("experienceLevel")),
        equipment_access=access,
        priority_muscles=priorities,
    )


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _issue(issues, issue_type, severity, message, location=None, suggested_fix=None):
    issues.append(
        ValidationIssue(
            type=issue_type,
            severity=severity,
            message=message,
            location=location,
            suggested_fix=suggested_fix,
        )
    )


def _session_location(phase_index, week, session):
    day = session.day_of_week or (f"Day {session.day_number}" if session.day_number else session.name)
    if phase_index is None:
        if session.day_number:
            return f"Day {session.day_number} ({day})" if session.day_of_week else day
        return day
    week_label = f"Week {week.week_number}" if week.week_number else "Week ?"
    return f"Phase {phase_index + 1}, {week_label}, {day}"


def _format_sets(value):
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"


def _training_weeks(program):
    """
    Group sessions into training weeks.

    Ungrouped sessions fall into seven-day blocks by day number, so day8
    opens Week 2. Phased sessions keep the weeks they were declared in.
    """
    by_index = {}
    for position, session in enumerate(program.sessions):
        day_number = session.day_number or position + 1
        by_index.setdefault((day_number - 1) // 7, []).append(session)
    weeks = [
        TrainingWeek(f"Week {index + 1}", None, None, None, by_index[index])
        for index in sorted(by_index)
    ]
    for phase_index, phase in enumerate(program.phases):
        for position, week in enumerate(phase.weeks):
            number = week.week_number or position + 1
            label = f"Phase {phase_index + 1}, Week {number}"
            weeks.append(TrainingWeek(label, phase_index, phase, week, week.sessions))
    return weeks


def weekly_sets_by_muscle(sessions):
    """
    Count weekly working sets per muscle group.

    Primary muscles count every set; secondary muscles count half.
    """
    volume = {}
    for session in sessions:
        if session.is_rest_day:
            continue
        for exercise in session.exercises:
            for muscle in exercise.primary_muscles:
                key = canonical_muscle_group(muscle)
                volume[key] = volume.get(key, 0) + exercise.sets
            for muscle in exercise.secondary_muscles:
                key = canonical_muscle_group(muscle)
                volume[key] = volume.get(key, 0) + exercise.sets * SECONDARY_MUSCLE_WEIGHT
    return volume


def _is_deload(training_week):
    if training_week.week is not None and training_week.week.is_deload:
        return True
    return training_week.phase is not None and training_week.phase.phase_type == "Deload"


def _has_training(sessions):
    return any(not s.is_rest_day and s.exercises for s in sessions)


# ---------------------------------------------------------------------------
# Stage 1: schema
# ---------------------------------------------------------------------------

def _error_path(loc):
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or None


def _error_message(error):
    cause = (error.get("ctx") or {}).get("error")
    if error["type"] == "value_error" and cause:
        return str(cause)
    return error["msg"]


def parse_program(document):
    """
    Read the persisted program form back into a TrainingProgram.

    Args:
        document: Program dict as produced by model_dump(by_alias=True)

    Returns:
        (program, issues); program is None whenever issues is non-empty
    """
    issues = []
    try:
        program = TrainingProgram.model_validate(document)
    except ValidationError as exc:
        for error in exc.errors():
            _issue(
                issues, SCHEMA, CRITICAL,
                _error_message(error), _error_path(error["loc"]), SCHEMA_FIX,
            )
        return None, issues

    if program.session_count() == 0:
        _issue(issues, SCHEMA, CRITICAL, "Program contains no sessions", None, SCHEMA_FIX)
        return None, issues
    return program, issues


def check_schema(document):
    """CRITICAL/SCHEMA issues for a persisted program dict (empty when sound)."""
    return parse_program(document)[1]


# ---------------------------------------------------------------------------
# Stage 2: scientific
# ---------------------------------------------------------------------------

def check_anchor_lifts(program, context):
    issues = []
    for phase_index, _phase, week, session in program.iter_sessions():
        if session.is_rest_day or not session.exercises:
            continue
        location = _session_location(phase_index, week, session)
        anchors = [exercise for exercise in session.exercises if exercise.tier == "Anchor"]
        if not anchors:
            _issue(
                issues, SCIENTIFIC, HIGH,
                f"No Anchor-tier exercise found in {session.name}",
                location, ANCHOR_FIX,
            )
        elif session.exercises[0].tier != "Anchor":
            _issue(
                issues, SCIENTIFIC, HIGH,
                f"Anchor lift {anchors[0].name} is not the first exercise in {session.name}",
                location, ANCHOR_FIX,
            )
        elif len(anchors) > 1:
            _issue(
                issues, OPTIMIZATION, MEDIUM,
                f"{len(anchors)} Anchor-tier exercises in {session.name}; only the first should be Anchor",
                location, "Reclassify later compound lifts as Primary.",
            )
    return issues


def check_set_prescriptions(program, context):
    issues = []
    for phase_index, _phase, week, session in program.iter_sessions():
        location = _session_location(phase_index, week, session)
        for exercise in session.exercises:
            if exercise.sets > MAX_SETS_PER_EXERCISE:
                _issue(
                    issues, OPTIMIZATION, MEDIUM,
                    f"{exercise.name} prescribes {exercise.sets} sets",
                    location, f"Keep single-exercise sets at {MAX_SETS_PER_EXERCISE} or fewer.",
                )
            elif exercise.sets < MIN_SETS_NON_ACCESSORY and exercise.tier != "Accessory":
                _issue(
                    issues, OPTIMIZATION, MEDIUM,
                    f"{exercise.name} ({exercise.tier}) prescribes only {exercise.sets} set",
                    location, f"Use at least {MIN_SETS_NON_ACCESSORY} sets for {exercise.tier} lifts.",
                )
    return issues


def check_exercise_order(program, context):
    issues = []
    for phase_index, _phase, week, session in program.iter_sessions():
        ranks = [TIERS.index(exercise.tier) for exercise in session.exercises]
        if any(after < before for before, after in zip(ranks, ranks[1:])):
            _issue(
                issues, OPTIMIZATION, MEDIUM,
                f"Exercise order in {session.name} does not follow "
                f"{' -> '.join(TIERS)}: {', '.join(e.tier for e in session.exercises)}",
                _session_location(phase_index, week, session),
                "Order exercises from the Anchor lift down to Accessory work.",
            )
    return issues


def check_volume_progression(program, context):
    issues = []
    weeks = _training_weeks(program)
    for previous, current in zip(weeks, weeks[1:]):
        previous_volume = weekly_sets_by_muscle(previous.sessions)
        current_volume = weekly_sets_by_muscle(current.sessions)

        if _is_deload(current):
            before = sum(previous_volume.values())
            after = sum(current_volume.values())
            if before > 0 and after >= before:
                _issue(
                    issues, OPTIMIZATION, MEDIUM,
                    f"Deload week volume ({_format_sets(after)} sets) is not below the prior week "
                    f"({_format_sets(before)} sets)",
                    current.label, "Cut deload volume to roughly half of the prior week.",
                )
            continue

        if current.phase_index is None or current.phase_index != previous.phase_index:
            continue
        if current.phase.phase_type != "Accumulation" or _is_deload(previous):
            continue

        for muscle in sorted(previous_volume):
            before = previous_volume[muscle]
            after = current_volume.get(muscle, 0)
            if after < before:
                _issue(
                    issues, OPTIMIZATION, MEDIUM,
                    f"Weekly sets for {muscle} drop from {_format_sets(before)} to "
                    f"{_format_sets(after)} during accumulation",
                    current.label, f"Hold or add sets for {muscle} until the planned deload.",
                )
    return issues


def check_volume_ceilings(program, context):
    issues = []
    level = context.experience_level
    for training_week in _training_weeks(program):
        if not _has_training(training_week.sessions):
            continue
        volume = weekly_sets_by_muscle(training_week.sessions)

        for muscle in sorted(volume):
            if muscle in NON_SPECIFIC_MUSCLES:
                continue
            landmark = get_volume_landmarks(muscle, level)
            if volume[muscle] > landmark.mrv:
                _issue(
                    issues, SCIENTIFIC, HIGH,
                    f"{_format_sets(volume[muscle])} weekly sets for {muscle} exceed the MRV "
                    f"of {landmark.mrv} for {level} lifters",
                    training_week.label,
                    f"Reduce weekly sets for {muscle} to {landmark.mrv} or fewer.",
                )

        if _is_deload(training_week):
            continue
        for muscle in context.priority_muscles:
            landmark = get_volume_landmarks(muscle, level)
            sets = volume.get(muscle, 0)
            if sets < landmark.mev:
                _issue(
                    issues, SCIENTIFIC, HIGH,
                    f"Priority muscle {muscle} gets {_format_sets(sets)} weekly sets, below the MEV "
                    f"of {landmark.mev} for {level} lifters",
                    training_week.label,
                    f"Add work for {muscle} to reach at least {landmark.mev} weekly sets.",
                )
    return issues


def check_scientific(program, context):
    """Domain rules; every rule runs even when an earlier one reports."""
    issues = []
    rules = (
        check_anchor_lifts,
        check_exercise_order,
        check_volume_progression,
        check_volume_ceilings,
        check_set_prescriptions,
    )
    for rule in rules:
        issues.extend(rule(program, context))
    return issues


# ---------------------------------------------------------------------------
# Stage 3: structural
# ---------------------------------------------------------------------------

def check_structural(program, context):
    issues = []
    for phase_index, phase in enumerate(program.phases):
        location = f"Phase {phase_index + 1}"
        if phase.duration_weeks is not None and phase.duration_weeks != len(phase.weeks):
            _issue(
                issues, STRUCTURAL, HIGH,
                f"Phase duration mismatch: {phase.name} declares {phase.duration_weeks} week(s) "
                f"but contains {len(phase.weeks)}",
                location, "Make durationWeeks match the number of weeks in the phase.",
            )

        numbers = [week.week_number for week in phase.weeks if week.week_number is not None]
        for before, after in zip(numbers, numbers[1:]):
            if after != before + 1:
                _issue(
                    issues, STRUCTURAL, HIGH,
                    f"Week numbering in {phase.name} jumps from {before} to {after}",
                    location, "Number weeks sequentially without gaps.",
                )

    if program.duration_weeks_total and program.phases:
        planned = sum(phase.duration_weeks or len(phase.weeks) for phase in program.phases)
        if planned != program.duration_weeks_total:
            _issue(
                issues, STRUCTURAL, HIGH,
                f"Program declares {program.duration_weeks_total} week(s) but phases add up to {planned}",
                None, "Make durationWeeksTotal equal the sum of phase durations.",
            )

    phase_types = tuple(phase.phase_type for phase in program.phases)
    if len(phase_types) > 1 and all(phase_types):
        # A canonical opening is enough; later phases may repeat the cycle.
        if not any(phase_types[:len(pattern)] == pattern for pattern in CANONICAL_PHASE_SEQUENCES):
            _issue(
                issues, STRUCTURAL, MEDIUM,
                f"Unrecognized periodization sequence: {' -> '.join(phase_types)}",
                None, "Prefer Accumulation -> Intensification -> Realization/Deload.",
            )
    return issues


# ---------------------------------------------------------------------------
# Stage 4: equipment
# ---------------------------------------------------------------------------

def check_equipment(program, context):
    issues = []
    allowed = ALLOWED_EQUIPMENT.get(context.equipment_access)
    for phase_index, _phase, week, session in program.iter_sessions():
        if session.is_rest_day or not session.exercises:
            continue
        location = _session_location(phase_index, week, session)

        if allowed is not None:
            offending = [
                exercise.name
                for exercise in session.exercises
                if any(item not in allowed for item in exercise.equipment)
            ]
            if offending:
                _issue(
                    issues, STRUCTURAL, MEDIUM,
                    f"{', '.join(offending)} need equipment outside {context.equipment_access} access",
                    location, "Swap in movements that fit the available equipment.",
                )

        classes = {item for exercise in session.exercises for item in exercise.equipment}
        if {"barbell", "dumbbell", "cable"} <= classes and len(session.exercises) > MAX_EXERCISES_MIXED_EQUIPMENT:
            _issue(
                issues, STRUCTURAL, MEDIUM,
                f"{session.name} spreads {len(session.exercises)} exercises across barbell, dumbbell "
                f"and cable stations",
                location, "Cluster exercises around fewer equipment stations.",
            )
    return issues


DEFAULT_STAGES = (check_scientific, check_structural, check_equipment)


def _aggregate(issues):
    errors = tuple(issue for issue in issues if issue.severity in BLOCKING_SEVERITIES)
    warnings = tuple(issue for issue in issues if issue.severity not in BLOCKING_SEVERITIES)
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_program(candidate, profile=None, stages=DEFAULT_STAGES):
    """
    Validate a program and aggregate issues by severity.

    Args:
        candidate: TrainingProgram or its persisted dict form
        profile: Optional onboarding profile (experience, equipment, priorities)
        stages: Post-schema stage functions, run in order

    Returns:
        ValidationResult; is_valid is False when any CRITICAL or HIGH issue exists
    """
    context = build_validation_context(profile)
    if isinstance(candidate, TrainingProgram):
        candidate = candidate.model_dump(by_alias=True)

    program, schema_issues = parse_program(candidate)
    if schema_issues:
        return _aggregate(schema_issues)

    issues = []
    for stage in stages:
        issues.extend(stage(program, context))
    return _aggregate(issues)
