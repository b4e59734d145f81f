"""
Weekly volume landmarks (MEV / MAV / MRV) per muscle group and experience level.
"""

from collections import namedtuple


VolumeLandmark = namedtuple("VolumeLandmark", ["mev", "mav", "mrv"])

EXPERIENCE_LEVELS = ("beginner", "intermediate", "advanced")
DEFAULT_EXPERIENCE_LEVEL = "beginner"

# Weekly working sets. Seeded from published hypertrophy volume ranges,
# intermediate column is the reference, the others are scaled around it.
LANDMARK_TABLE = {
    "chest": {
        "beginner": (6, 12, 18),
        "intermediate": (8, 18, 26),
        "advanced": (10, 20, 30),
    },
    "back": {
        "beginner": (8, 14, 20),
        "intermediate": (10, 20, 30),
        "advanced": (12, 22, 35),
    },
    "shoulders": {
        "beginner": (6, 12, 18),
        "intermediate": (8, 16, 24),
        "advanced": (10, 20, 28),
    },
    "biceps": {
        "beginner": (4, 10, 16),
        "intermediate": (6, 14, 22),
        "advanced": (8, 18, 26),
    },
    "triceps": {
        "beginner": (4, 8, 14),
        "intermediate": (6, 12, 18),
        "advanced": (8, 16, 22),
    },
    "quads": {
        "beginner": (6, 12, 18),
        "intermediate": (8, 16, 24),
        "advanced": (10, 18, 26),
    },
    "hamstrings": {
        "beginner": (4, 8, 14),
        "intermediate": (6, 12, 18),
        "advanced": (8, 14, 20),
    },
    "glutes": {
        "beginner": (0, 6, 12),
        "intermediate": (6, 12, 18),
        "advanced": (8, 14, 22),
    },
    "calves": {
        "beginner": (6, 10, 16),
        "intermediate": (8, 16, 25),
        "advanced": (10, 18, 28),
    },
    "abs": {
        "beginner": (0, 10, 18),
        "intermediate": (0, 16, 25),
        "advanced": (4, 20, 28),
    },
}

DEFAULT_LANDMARKS = {
    "beginner": (6, 12, 18),
    "intermediate": (8, 16, 22),
    "advanced": (10, 18, 25),
}

MUSCLE_ALIASES = {
    "pecs": "chest",
    "pectorals": "chest",
    "lats": "back",
    "upper back": "back",
    "traps": "back",
    "delts": "shoulders",
    "deltoids": "shoulders",
    "bicep": "biceps",
    "tricep": "triceps",
    "quadriceps": "quads",
    "quad": "quads",
    "hamstring": "hamstrings",
    "glute": "glutes",
    "calf": "calves",
    "core": "abs",
    "abdominals": "abs",
}

SPECIALIZATION_FACTOR = 1.2


def canonical_muscle_group(muscle):
    """Map a free-text muscle label onto the landmark table's key space."""
    if not isinstance(muscle, str):
        return ""
    key = " ".join(muscle.strip().lower().replace("_", " ").split())
    return MUSCLE_ALIASES.get(key, key.replace(" ", "_"))


def normalize_experience_level(level):
    """
    Resolve an experience label to beginner / intermediate / advanced.

    Matching is a case-insensitive substring test so labels such as
    "Intermediate (1-3 years)" resolve. Anything unrecognized is treated
    as a beginner, which gives the most conservative ceilings.
    """
    if not isinstance(level, str):
        return DEFAULT_EXPERIENCE_LEVEL
    value = level.strip().lower()
    for candidate in EXPERIENCE_LEVELS:
        if candidate in value:
            return candidate
    return DEFAULT_EXPERIENCE_LEVEL


def get_volume_landmarks(muscle, experience_level, specialization=False):
    """
    Look up the weekly set landmarks for a muscle group.

    Args:
        muscle: Muscle group name (aliases such as "lats" are accepted)
        experience_level: beginner / intermediate / advanced
        specialization: Raise MAV and MRV for a muscle being specialized

    Returns:
        VolumeLandmark(mev, mav, mrv) with mev <= mav <= mrv
    """
    level = normalize_experience_level(experience_level)
    row = LANDMARK_TABLE.get(canonical_muscle_group(muscle), DEFAULT_LANDMARKS)
    mev, mav, mrv = row[level]

    if specialization:
        mav = int(round(mav * SPECIALIZATION_FACTOR))
        mrv = int(round(mrv * SPECIALIZATION_FACTOR))

    mav = max(mav, mev)
    mrv = max(mrv, mav)
    return VolumeLandmark(mev, mav, mrv)


def landmarks_for_level(experience_level, specialization=False):
    """Return {muscle: VolumeLandmark} for every tabled muscle group."""
    return {
        muscle: get_volume_landmarks(muscle, experience_level, specialization)
        for muscle in LANDMARK_TABLE
    }
