"""
Onboarding profile model and the shape check run before any record is created.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


MIN_SESSION_MINUTES = 15
MAX_SESSION_MINUTES = 180

EquipmentAccess = Literal["full_gym", "dumbbells_only", "bodyweight_only"]


class PersonalRecords(BaseModel):
    model_config = ConfigDict(extra="allow")

    squat: Optional[float] = Field(None, gt=0, strict=True)
    bench: Optional[float] = Field(None, gt=0, strict=True)
    deadlift: Optional[float] = Field(None, gt=0, strict=True)


class OnboardingProfile(BaseModel):
    """
    Profile submitted with a generation request.

    Goal and experience labels are free text here; guideline selection
    resolves them later, including legacy goal wording. Unknown keys such as
    additionalInfo are kept.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    experience_level: str = Field(alias="experienceLevel")
    primary_focus: str = Field(alias="primaryFocus")
    session_duration: int = Field(
        alias="sessionDuration", ge=MIN_SESSION_MINUTES, le=MAX_SESSION_MINUTES, strict=True
    )
    equipment_access: Optional[EquipmentAccess] = Field(None, alias="equipmentAccess")
    personal_records: Optional[PersonalRecords] = Field(None, alias="personalRecords")
    priority_muscles: Optional[List[str]] = Field(None, alias="priorityMuscles")
    training_days_per_week: Optional[int] = Field(
        None, alias="trainingDaysPerWeek", ge=1, le=7, strict=True
    )

    @field_validator("experience_level", "primary_focus")
    @classmethod
    def required_text(cls, value):
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("priority_muscles")
    @classmethod
    def muscle_names(cls, value):
        if value is not None and not all(item.strip() for item in value):
            raise ValueError("priorityMuscles must be a list of muscle names")
        return value


def error_details(errors, prefix=(), root="onboardingData"):
    """
    Flatten pydantic errors into {"field", "message"} dicts.

    Leading location parts listed in prefix (for example the request body
    wrapper) are dropped from the dotted field name.
    """
    details = []
    for error in errors:
        loc = list(error["loc"])
        while loc and loc[0] in prefix:
            loc.pop(0)
        cause = (error.get("ctx") or {}).get("error")
        message = str(cause) if error["type"] == "value_error" and cause else error["msg"]
        field = ".".join(str(part) for part in loc) or root
        details.append({"field": field, "message": message})
    return details


def validate_onboarding_profile(data):
    """
    Check the onboarding profile before any record is created.

    Returns:
        List of {"field", "message"} dicts; empty when the profile is usable
    """
    try:
        OnboardingProfile.model_validate(data)
    except ValidationError as exc:
        return error_details(exc.errors())
    return []


def profile_snapshot(data):
    """Copy of the profile as stored on the generation record."""
    snapshot = dict(data)
    snapshot.setdefault("equipmentAccess", "full_gym")
    return snapshot
