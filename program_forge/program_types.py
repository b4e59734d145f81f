"""
Typed training program structures produced by the normalizer.

Persisted program content is model_dump(by_alias=True), which
TrainingProgram.model_validate() reads back. Validation failures on the
persisted form are what the guardian reports as schema issues.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

PHASE_TYPES = ("Accumulation", "Intensification", "Realization", "Deload")

Tier = Literal["Anchor", "Primary", "Secondary", "Accessory"]
PhaseType = Literal["Accumulation", "Intensification", "Realization", "Deload"]


class ProgramModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ExerciseDetail(ProgramModel):
    name: str
    tier: Tier = "Secondary"
    category: str = "compound_movement"
    sets: int = Field(3, gt=0, strict=True)
    reps: str = "8-12"
    load: str = ""
    rpe: str = ""
    rest: str = "60-90 seconds"
    tempo: str = ""
    primary_muscles: List[str] = Field(default_factory=list, alias="primaryMuscles")
    secondary_muscles: List[str] = Field(default_factory=list, alias="secondaryMuscles")
    equipment: List[str] = Field(default_factory=list)
    notes: str = ""
    rationale: str = ""

    @field_validator("name", "reps")
    @classmethod
    def not_blank(cls, value, info):
        if not value.strip():
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return value

    @computed_field(alias="isAnchorLift")
    @property
    def is_anchor_lift(self) -> bool:
        return self.tier == "Anchor"


class Session(ProgramModel):
    name: str
    focus: str = "General Fitness"
    training_focus: str = Field("general_fitness", alias="trainingFocus")
    day_of_week: Optional[str] = Field(None, alias="dayOfWeek")
    day_number: Optional[int] = Field(None, alias="dayNumber", gt=0)
    week_number: Optional[int] = Field(None, alias="weekNumber", gt=0)
    is_rest_day: bool = Field(False, alias="isRestDay", strict=True)
    estimated_duration: int = Field(0, alias="estimatedDuration", ge=0)
    instructions: str = ""
    exercises: List[ExerciseDetail] = Field(default_factory=list)

    @model_validator(mode="after")
    def rest_day_matches_exercises(self):
        if self.is_rest_day and self.exercises:
            raise ValueError("Rest day must not prescribe exercises")
        if not self.is_rest_day and not self.exercises:
            raise ValueError("Training session must prescribe at least one exercise")
        return self


class Week(ProgramModel):
    week_number: Optional[int] = Field(None, alias="weekNumber", gt=0, strict=True)
    is_deload: bool = Field(False, alias="isDeload", strict=True)
    sessions: List[Session] = Field(default_factory=list)


class Phase(ProgramModel):
    name: str
    phase_type: Optional[PhaseType] = Field(None, alias="phaseType")
    duration_weeks: Optional[int] = Field(None, alias="durationWeeks", gt=0, strict=True)
    weeks: List[Week] = Field(default_factory=list)


class TrainingProgram(ProgramModel):
    name: str = "Generated Training Program"
    description: str = ""
    duration_weeks_total: Optional[int] = Field(None, alias="durationWeeksTotal", gt=0)
    periodization_model: str = Field("", alias="periodizationModel")
    sessions: List[Session] = Field(default_factory=list)
    phases: List[Phase] = Field(default_factory=list)

    def iter_sessions(self):
        """
        Yield (phase_index, phase, week, session) in program order.

        Ungrouped sessions come first with phase_index, phase and week None.
        """
        for session in self.sessions:
            yield None, None, None, session
        for phase_index, phase in enumerate(self.phases):
            for week in phase.weeks:
                for session in week.sessions:
                    yield phase_index, phase, week, session

    def session_count(self):
        return sum(1 for _ in self.iter_sessions())
