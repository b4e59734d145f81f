"""
Guideline text selection and program planning defaults by goal and level.
"""

import os
from collections import namedtuple

import yaml
from loguru import logger

from program_forge.volume_landmarks import EXPERIENCE_LEVELS, normalize_experience_level


GUIDELINES_FILE = os.path.join(os.path.dirname(__file__), "guidelines.yaml")

GOALS = ("hypertrophy", "strength", "general_fitness", "endurance", "sport_performance")

# Older goal taxonomies used free-text labels such as "Muscle Gain: Hypertrophy Focus".
# Order matters: the first row with a matching phrase wins.
LEGACY_GOAL_KEYWORDS = [
    (("muscle gain", "bodybuilding", "hypertrophy"), "hypertrophy"),
    (("strength gain", "powerlifting", "beginner strength", "strength"), "strength"),
    (("endurance",), "endurance"),
    (("sport performance", "athletic performance", "sport"), "sport_performance"),
    (("general fitness", "weight loss"), "general_fitness"),
]

FALLBACK_GOAL = "general_fitness"
FALLBACK_LEVEL = "beginner"

GuidelineSelection = namedtuple("GuidelineSelection", ["goal", "level", "match", "text"])

_default_guidelines = None


def load_guidelines(path=None):
    """Load guideline blocks from YAML. The packaged file is cached."""
    global _default_guidelines
    if path is None and _default_guidelines is not None:
        return _default_guidelines

    with open(path or GUIDELINES_FILE, "r") as f:
        guidelines = yaml.safe_load(f) or {}

    if path is None:
        _default_guidelines = guidelines
    return guidelines


def _exact_key(value):
    if not isinstance(value, str):
        return ""
    return "_".join(value.strip().lower().replace("-", " ").split())


def resolve_goal(goal):
    """
    Map a goal label to a guideline goal key.

    Returns:
        (goal_key, match) where match is "exact", "substring" or None
    """
    key = _exact_key(goal)
    if key in GOALS:
        return key, "exact"

    text = (goal or "").lower() if isinstance(goal, str) else ""
    for phrases, goal_key in LEGACY_GOAL_KEYWORDS:
        if any(phrase in text for phrase in phrases):
            return goal_key, "substring"
    return None, None


def select_guidelines(goal, experience_level, guidelines=None):
    """
    Choose the guideline text for a (goal, experience level) pair.

    Exact keys are tried first, then legacy substring matching over free-text
    goal labels. Anything unmatched gets the general fitness beginner block.

    Args:
        goal: Primary focus from the onboarding profile
        experience_level: Experience label from the onboarding profile
        guidelines: Parsed guideline blocks (defaults to the packaged file)

    Returns:
        GuidelineSelection(goal, level, match, text)
    """
    guidelines = guidelines or load_guidelines()
    goal_key, match = resolve_goal(goal)

    level_key = _exact_key(experience_level)
    if level_key not in EXPERIENCE_LEVELS:
        level_key = normalize_experience_level(experience_level)
        if match == "exact":
            match = "substring"

    goal_blocks = guidelines.get("goals") or {}
    if goal_key is None or level_key not in (goal_blocks.get(goal_key) or {}):
        logger.warning(
            f"No guideline block for goal={goal!r} level={experience_level!r}; "
            f"using {FALLBACK_GOAL}/{FALLBACK_LEVEL}"
        )
        goal_key, level_key, match = FALLBACK_GOAL, FALLBACK_LEVEL, "fallback"

    blocks = [text.strip() for text in (guidelines.get("common") or {}).values() if text]
    blocks.append(goal_blocks[goal_key][level_key].strip())
    return GuidelineSelection(goal_key, level_key, match, "\n\n".join(blocks))


def select_periodization_model(goal, experience_level):
    text = goal.lower() if isinstance(goal, str) else ""
    level = experience_level.lower() if isinstance(experience_level, str) else ""

    if "strength" in text or "powerlifting" in text:
        return "Strength-Focused Block Periodization"
    if "muscle gain" in text or "hypertrophy" in text:
        return "Hypertrophy-Focused Block Periodization"
    if "general fitness" in text or "general_fitness" in text or "beginner" in level:
        return "Linear Progression Model"
    return "Balanced Block Periodization"


def program_duration_weeks(goal):
    """Planned program length in weeks for a goal."""
    goal_key, _ = resolve_goal(goal)
    if goal_key == "general_fitness":
        return 4
    if goal_key == "endurance":
        return 5
    return 6
