"""
Exercise metadata inference from exercise names.

Generated programs frequently omit category, muscles, equipment and tier.
The classifier fills those gaps from the exercise name. The keyword table is
the default strategy; anything with the same four methods can replace it
(for example a lookup against a curated exercise catalog).
"""

import os

import yaml
from loguru import logger


TIERS = ("Anchor", "Primary", "Secondary", "Accessory")
CATEGORIES = ("compound_movement", "isolation", "core")
EQUIPMENT_CLASSES = ("barbell", "dumbbell", "cable", "bodyweight", "other")

# ---------------------------------------------------------------------------
# Ordered keyword rows: first row whose tokens hit the lowered name wins.
# "exclude" tokens veto a row even when a match token is present.
# ---------------------------------------------------------------------------
CATEGORY_RULES = [
    {"match": ["squat", "deadlift", "bench"], "value": "compound_movement"},
    {"match": ["curl", "extension", "fly"], "value": "isolation"},
    {"match": ["plank", "crunch", "abs"], "value": "core"},
]
DEFAULT_CATEGORY = "compound_movement"

MUSCLE_RULES = [
    {"match": ["squat", "lunge"], "value": ["quads", "glutes"]},
    {"match": ["deadlift"], "value": ["hamstrings", "glutes", "back"]},
    {"match": ["bench", "chest"], "value": ["chest"]},
    {"match": ["row", "pull"], "value": ["back"]},
    {"match": ["shoulder", "press"], "value": ["shoulders"]},
    {"match": ["curl", "bicep"], "value": ["biceps"]},
    {"match": ["tricep", "extension"], "value": ["triceps"]},
    {"match": ["calf"], "value": ["calves"]},
]
DEFAULT_MUSCLES = ["full_body"]

EQUIPMENT_RULES = [
    {"match": ["barbell", "squat", "deadlift"], "value": ["barbell"]},
    {"match": ["dumbbell", "db"], "value": ["dumbbell"]},
    {"match": ["cable", "machine"], "value": ["cable"]},
    {"match": ["bodyweight", "push-up", "pull-up"], "value": ["bodyweight"]},
]
DEFAULT_EQUIPMENT = ["other"]

TIER_RULES = [
    {"match": ["squat", "deadlift", "bench"], "value": "Anchor"},
    {"match": ["row"], "value": "Primary"},
    {"match": ["press"], "exclude": ["tricep"], "value": "Primary"},
    {"match": ["curl", "extension", "fly"], "value": "Accessory"},
]
DEFAULT_TIER = "Secondary"

RULE_SECTIONS = ("category", "muscles", "equipment", "tier")


def _first_match(rules, name, default):
    value = (name or "").lower()
    for rule in rules:
        if any(token in value for token in rule.get("exclude", [])):
            continue
        if any(token in value for token in rule["match"]):
            return rule["value"]
    return default


class ExerciseClassifier:
    """Interface for exercise metadata inference."""

    def infer_category(self, name):
        raise NotImplementedError

    def infer_primary_muscles(self, name):
        raise NotImplementedError

    def infer_equipment(self, name):
        raise NotImplementedError

    def infer_tier(self, name):
        raise NotImplementedError

    def classify(self, name):
        """Return every inferred attribute for an exercise name."""
        return {
            "category": self.infer_category(name),
            "primary_muscles": self.infer_primary_muscles(name),
            "equipment": self.infer_equipment(name),
            "tier": self.infer_tier(name),
        }


class KeywordExerciseClassifier(ExerciseClassifier):
    """
    Case-insensitive substring matching against fixed keyword tables.

    Usage:
        classifier = KeywordExerciseClassifier()
        classifier.infer_tier("Barbell Back Squat")  # -> "Anchor"
        classifier.infer_equipment("DB Lateral Raise")  # -> ["dumbbell"]
    """

    def __init__(self, keywords_file=None):
        self._rules = {
            "category": list(CATEGORY_RULES),
            "muscles": list(MUSCLE_RULES),
            "equipment": list(EQUIPMENT_RULES),
            "tier": list(TIER_RULES),
        }
        self._load_keyword_overrides(keywords_file)

    def _load_keyword_overrides(self, keywords_file):
        """Prepend rows from a YAML keyword file so they win over built-ins."""
        if not keywords_file or not os.path.exists(keywords_file):
            return
        try:
            with open(keywords_file, "r") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning(f"Ignoring exercise keyword file {keywords_file}: {exc}")
            return

        if not isinstance(config, dict):
            return

        for section in RULE_SECTIONS:
            extra = []
            for row in config.get(section) or []:
                rule = self._coerce_rule(section, row)
                if rule:
                    extra.append(rule)
            if extra:
                self._rules[section] = extra + self._rules[section]
                logger.debug(f"Loaded {len(extra)} {section} keyword rows from {keywords_file}")

    @staticmethod
    def _coerce_rule(section, row):
        if not isinstance(row, dict):
            return None
        match = [str(token).lower() for token in (row.get("match") or []) if token]
        if not match:
            return None
        value = row.get("value")
        if section in ("muscles", "equipment"):
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not value:
                return None
            value = [str(item) for item in value]
        elif section == "tier" and value not in TIERS:
            return None
        elif section == "category" and value not in CATEGORIES:
            return None
        exclude = [str(token).lower() for token in (row.get("exclude") or []) if token]
        return {"match": match, "exclude": exclude, "value": value}

    def infer_category(self, name):
        return _first_match(self._rules["category"], name, DEFAULT_CATEGORY)

    def infer_primary_muscles(self, name):
        return list(_first_match(self._rules["muscles"], name, DEFAULT_MUSCLES))

    def infer_equipment(self, name):
        return list(_first_match(self._rules["equipment"], name, DEFAULT_EQUIPMENT))

    def infer_tier(self, name):
        return _first_match(self._rules["tier"], name, DEFAULT_TIER)


# ---------------------------------------------------------------------------
# Module-level singleton for convenience
# ---------------------------------------------------------------------------
_default_classifier = None


def get_classifier(keywords_file=None):
    """Get or create the module-level singleton classifier."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = KeywordExerciseClassifier(keywords_file=keywords_file)
    return _default_classifier


def reset_classifier():
    """Reset the singleton (useful for testing)."""
    global _default_classifier
    _default_classifier = None
