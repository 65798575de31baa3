"""Pipeline contracts used as extraction schemas."""

from illumina.ai.pipeline.contracts import AIStudyPlanResponse, BiblePassage, BibleVerse, DailyPlanEntry, DailyStudyContent, ParsedStudyRequest, StudyContentBatch, StudyParameters, TheologicalConcern, TheologicalReview

__all__ = ["AIStudyPlanResponse", "BiblePassage", "BibleVerse", "DailyPlanEntry", "DailyStudyContent", "ParsedStudyRequest", "StudyContentBatch", "StudyParameters", "TheologicalConcern", "TheologicalReview"]
