"""Submission metadata handed to the persistence and statistics collaborators.

The engine never computes ranks or aggregate statistics; it only produces
these per-session input fields alongside the canonical payload.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class SubmissionMetadata(BaseModel):
    """Derived facts about one completed response session."""

    questionnaire_id: str
    started_at: datetime
    submitted_at: datetime
    time_spent_seconds: int
    # All questions in the schema, visible or not
    total_questions: int
    answered_questions: int
    completion_percentage: int
    average_time_per_question: int
    total_characters_written: int
    text_responses_count: int
    map_selections_count: int
    revisit_count: int
    device_type: Literal["desktop", "mobile", "tablet"]
    completed_sections: list[str]
    end_reason: Literal["early_exit", "last_section"]
