"""
Coerce loosely-typed generated program JSON into TrainingProgram structures.

Every field read goes through an explicit default or inference path. Only
expected, named fields are read; anything else in the generated object is
ignored.
"""

import math
import re

from loguru import logger

from program_forge.exercise_classifier import CATEGORIES, TIERS, get_classifier
from program_forge.program_types import (
    DAY_NAMES,
    PHASE_TYPES,
    ExerciseDetail,
    Phase,
    Session,
    TrainingProgram,
    Week,
)
from program_forge.volume_landmarks import canonical_muscle_group


DAY_KEY_RE = re.compile(r"^day[\s_-]*(\d{1,3})$", re.IGNORECASE)

DEFAULT_SETS = 3
DEFAULT_REPS = "8-12"
DEFAULT_REST = "60-90 seconds"
DEFAULT_EXERCISE_NAME = "Unknown Exercise"
DEFAULT_PROGRAM_NAME = "Generated Training Program"
DEFAULT_SESSION_INSTRUCTIONS = "Complete all exercises with proper form and adequate rest."
REST_DAY_NAME = "Rest Day"
REST_DAY_INSTRUCTIONS = "Rest and recovery day"
MINUTES_PER_EXERCISE = 15

PHASE_TYPE_ALIASES = {
    "peak": "Realization",
    "realisation": "Realization",
    "recovery": "Deload",
}


def _get(obj, key):
    if isinstance(obj, dict):
        return dict.get(obj, key)
    return None


def _text(value):
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None


def _first_text(obj, *keys):
    for key in keys:
        value = _text(_get(obj, key))
        if value:
            return value
    return None


def _is_finite(value):
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _positive_number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not _is_finite(value) or value <= 0:
        return None
    return value


def _positive_int(value):
    number = _positive_number(value)
    if number is None:
        return None
    return max(1, int(round(number)))


def _scalar_text(value):
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)) and _is_finite(value):
        return str(value)
    return _text(value) or ""


def _text_list(value):
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _map_training_focus(label):
    value = (label or "").lower()
    if "strength" in value:
        return "strength"
    if "hypertrophy" in value or "muscle" in value:
        return "hypertrophy"
    if "endurance" in value or "cardio" in value:
        return "endurance"
    if "power" in value:
        return "power"
    return "general_fitness"


def _match_phase_type(value):
    text = (_text(value) or "").lower()
    if not text:
        return None
    for phase_type in PHASE_TYPES:
        if phase_type.lower() in text:
            return phase_type
    for token, phase_type in PHASE_TYPE_ALIASES.items():
        if token in text:
            return phase_type
    return None


def _day_of_week(value, fallback_number):
    if isinstance(value, str):
        lowered = value.strip().lower()
        for day in DAY_NAMES:
            if day.lower() == lowered:
                return day
    day_number = _positive_int(value)
    if day_number and day_number <= 7:
        return DAY_NAMES[day_number - 1]
    if fallback_number:
        return DAY_NAMES[(fallback_number - 1) % 7]
    return None


def _rest_day(day_number, day_of_week, week_number):
    return Session(
        name=REST_DAY_NAME,
        focus="Rest",
        training_focus="general_fitness",
        day_of_week=day_of_week,
        day_number=day_number,
        week_number=week_number,
        is_rest_day=True,
        estimated_duration=0,
        instructions=REST_DAY_INSTRUCTIONS,
        exercises=[],
    )


def normalize_exercise(item, classifier=None):
    """
    Build an ExerciseDetail from one generated exercise object.

    Explicit, valid metadata is kept. Missing metadata is inferred from the
    exercise name by the classifier.
    """
    classifier = classifier or get_classifier()
    name = _first_text(item, "name", "exerciseName") or DEFAULT_EXERCISE_NAME

    explicit_tier = _text(_get(item, "tier"))
    tier = next((t for t in TIERS if explicit_tier and t.lower() == explicit_tier.lower()), None)
    if tier is None:
        tier = classifier.infer_tier(name)

    explicit_category = (_text(_get(item, "category")) or "").lower()
    category = explicit_category if explicit_category in CATEGORIES else classifier.infer_category(name)

    primary = _text_list(_get(item, "primaryMuscles")) or _text_list(_get(item, "targetMuscles"))
    primary_muscles = [canonical_muscle_group(m) for m in primary] or classifier.infer_primary_muscles(name)
    secondary_muscles = [canonical_muscle_group(m) for m in _text_list(_get(item, "secondaryMuscles"))]

    equipment = []
    for label in _text_list(_get(item, "equipment")):
        for equipment_class in classifier.infer_equipment(label):
            if equipment_class not in equipment:
                equipment.append(equipment_class)
    if not equipment:
        equipment = classifier.infer_equipment(name)

    sets = _positive_int(_get(item, "sets")) or DEFAULT_SETS

    return ExerciseDetail(
        name=name,
        tier=tier,
        category=category,
        sets=sets,
        reps=_first_text(item, "reps", "repRange") or DEFAULT_REPS,
        load=_scalar_text(_get(item, "load")) or _scalar_text(_get(item, "weight")),
        rpe=_scalar_text(_get(item, "rpe")),
        rest=_first_text(item, "rest", "restBetweenSets") or DEFAULT_REST,
        tempo=_first_text(item, "tempo") or "",
        primary_muscles=primary_muscles,
        secondary_muscles=secondary_muscles,
        equipment=equipment,
        notes=_first_text(item, "instructions", "notes") or "",
        rationale=_first_text(item, "rationale") or "",
    )


def normalize_session(day, day_number=None, week_number=None, classifier=None):
    """Normalize one day object. Anything without usable exercises is a rest day."""
    day_of_week = _day_of_week(_get(day, "dayOfWeek"), day_number)
    if not isinstance(day, dict):
        return _rest_day(day_number, day_of_week, week_number)

    raw_exercises = _get(day, "exercises")
    if not isinstance(raw_exercises, list):
        raw_exercises = _get(day, "mainExercises")
    if not isinstance(raw_exercises, list) or _get(day, "isRestDay") is True:
        return _rest_day(day_number, day_of_week, week_number)

    exercises = [
        normalize_exercise(item, classifier=classifier)
        for item in raw_exercises
        if isinstance(item, dict)
    ]
    if not exercises:
        return _rest_day(day_number, day_of_week, week_number)

    focus = _first_text(day, "focus") or "General Fitness"
    duration = (
        _positive_int(_get(day, "duration"))
        or _positive_int(_get(day, "estimatedDuration"))
        or len(exercises) * MINUTES_PER_EXERCISE
    )
    label = f"Day {day_number} Workout" if day_number else "Workout"

    return Session(
        name=_first_text(day, "name", "workoutName") or label,
        focus=focus,
        training_focus=_map_training_focus(focus),
        day_of_week=day_of_week,
        day_number=day_number,
        week_number=week_number,
        is_rest_day=False,
        estimated_duration=duration,
        instructions=_first_text(day, "instructions", "notes") or DEFAULT_SESSION_INSTRUCTIONS,
        exercises=exercises,
    )


def _normalize_week(week, index, classifier):
    week_number = _positive_int(_get(week, "weekNumber"))
    days = _get(week, "days")
    if not isinstance(days, list):
        days = _get(week, "sessions")
    if not isinstance(days, list):
        days = []

    is_deload = _get(week, "isDeload") is True or "deload" in (
        _first_text(week, "intensityFocus", "name") or ""
    ).lower()

    sessions = [
        normalize_session(
            day,
            day_number=_positive_int(_get(day, "dayNumber")) or position + 1,
            week_number=week_number,
            classifier=classifier,
        )
        for position, day in enumerate(days)
    ]
    return Week(week_number=week_number, is_deload=is_deload, sessions=sessions)


def _normalize_phase(phase, index, classifier):
    name = _first_text(phase, "phaseName", "name") or f"Phase {index + 1}"
    raw_weeks = _get(phase, "weeks")
    weeks = []
    if isinstance(raw_weeks, list):
        weeks = [
            _normalize_week(week, position, classifier)
            for position, week in enumerate(raw_weeks)
            if isinstance(week, dict)
        ]

    return Phase(
        name=name,
        phase_type=_match_phase_type(_get(phase, "phaseType")) or _match_phase_type(name),
        duration_weeks=_positive_int(_get(phase, "durationWeeks")),
        weeks=weeks,
    )


def _day_keys(raw):
    keyed = []
    for key in list(dict.keys(raw)):
        if not isinstance(key, str):
            continue
        match = DAY_KEY_RE.match(key.strip())
        if match:
            keyed.append((int(match.group(1)), key))
    return sorted(keyed)


def normalize_program(raw, classifier=None):
    """
    Turn an arbitrary generated object into a TrainingProgram.

    Accepts day-keyed objects ({"day1": {...}}), phased objects
    ({"phases": [{"weeks": [{"days": [...]}]}]}) and a top-level "workouts"
    list. Never raises; unusable input yields an empty program.

    Args:
        raw: Parsed model output of any type
        classifier: ExerciseClassifier used for metadata inference

    Returns:
        TrainingProgram
    """
    if not isinstance(raw, dict):
        logger.debug(f"Normalizer received {type(raw).__name__}; returning empty program")
        return TrainingProgram()

    try:
        classifier = classifier or get_classifier()
        program = TrainingProgram(
            name=_first_text(raw, "programName", "name") or DEFAULT_PROGRAM_NAME,
            description=_first_text(raw, "description", "programDescription") or "",
            duration_weeks_total=(
                _positive_int(_get(raw, "durationWeeksTotal"))
                or _positive_int(_get(raw, "durationWeeks"))
            ),
            periodization_model=_first_text(raw, "periodizationModel") or "",
        )

        raw_phases = _get(raw, "phases")
        if isinstance(raw_phases, list):
            program.phases = [
                _normalize_phase(phase, index, classifier)
                for index, phase in enumerate(raw_phases)
                if isinstance(phase, dict)
            ]

        for day_number, key in _day_keys(raw):
            program.sessions.append(
                normalize_session(_get(raw, key), day_number=day_number, classifier=classifier)
            )

        workouts = _get(raw, "workouts")
        if isinstance(workouts, list):
            offset = len(program.sessions)
            for position, workout in enumerate(workouts):
                program.sessions.append(
                    normalize_session(workout, day_number=offset + position + 1, classifier=classifier)
                )

        return program
    except Exception:
        logger.exception("Normalizer failed on generated program; returning empty program")
        return TrainingProgram()
