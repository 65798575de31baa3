"""Shared data contracts for the study generation pipeline."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

StudyStyle = Literal["devotional", "topical", "book-study", "couples", "marriage"]
Difficulty = Literal["beginner", "intermediate", "advanced"]
Audience = Literal["individual", "couples", "group", "family"]


class StudyParameters(BaseModel):
  """Inputs for a study generation request; immutable once accepted."""

  model_config = ConfigDict(frozen=True)

  title: str = Field(min_length=1, max_length=255)
  topic: str = Field(min_length=1, max_length=255)
  duration: str = Field(min_length=1, max_length=50)
  duration_days: int = Field(ge=1, le=30)
  study_style: StudyStyle = "devotional"
  difficulty: Difficulty = "intermediate"
  audience: Audience = "individual"
  special_requirements: str | None = None


class ParsedStudyRequest(BaseModel):
  """Structured reading of a free-text study request."""

  topic: str
  duration_days: int = Field(ge=1, le=30)
  study_style: StudyStyle
  difficulty: Difficulty
  audience: Audience
  focus_areas: list[str] = Field(default_factory=list)
  special_requirements: str | None = None


class DailyPlanEntry(BaseModel):
  day: int = Field(ge=1)
  title: str
  theme: str
  focus_passage: str = Field(alias="focusPassage")
  learning_objective: str = Field(alias="learningObjective")
  key_points: list[str] = Field(alias="keyPoints")
  supporting_scriptures: list[str] = Field(default_factory=list, alias="supportingScriptures")
  model_config = ConfigDict(populate_by_name=True)


class AIStudyPlanResponse(BaseModel):
  """Study plan as returned by the planning model, before enrichment."""

  title: str
  theme: str
  description: str
  duration: int = Field(ge=1)
  estimated_time_per_session: str = Field(alias="estimatedTimePerSession")
  pastor_message: str = Field(alias="pastorMessage")
  tags: list[str]
  daily_plan: list[DailyPlanEntry] = Field(alias="dailyPlan")
  model_config = ConfigDict(populate_by_name=True)


class BibleVerse(BaseModel):
  verse: int
  content: str


class BiblePassage(BaseModel):
  reference: str
  verses: list[BibleVerse]


class DailyStudyContent(BaseModel):
  """Content generated for a single study day."""

  day: int = Field(ge=1)
  title: str
  estimated_time: str = Field(alias="estimatedTime")
  passages: list[BiblePassage]
  theme: str | None = None
  opening_prayer: str | None = Field(default=None, alias="openingPrayer")
  study_focus: str | None = Field(default=None, alias="studyFocus")
  teaching_point: str | None = Field(default=None, alias="teachingPoint")
  discussion_questions: list[str] | None = Field(default=None, alias="discussionQuestions")
  reflection_question: str | None = Field(default=None, alias="reflectionQuestion")
  application_points: list[str] | None = Field(default=None, alias="applicationPoints")
  prayer_focus: str | None = Field(default=None, alias="prayerFocus")
  model_config = ConfigDict(populate_by_name=True)


class StudyContentBatch(BaseModel):
  """One content-generation response covering one or more days."""

  days: list[DailyStudyContent] = Field(min_length=1)


class TheologicalConcern(BaseModel):
  day: int | None = None
  severity: Literal["low", "medium", "high"]
  description: str


class TheologicalReview(BaseModel):
  """Reviewer verdict on the generated study as a whole."""

  is_approved: bool = Field(alias="isApproved")
  ready_for_publication: bool = Field(alias="readyForPublication")
  concerns: list[TheologicalConcern] = Field(default_factory=list)
  summary: str | None = None
  model_config = ConfigDict(populate_by_name=True)
