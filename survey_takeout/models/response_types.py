"""Pydantic models shared by the logic layer and the HTTP routes."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from survey_takeout.models.question_kind import AnswerValue, QuestionKind, decode_answer
from survey_takeout.models.takeout_status import ApprovalAction, TakeoutStatus


class QuestionResponseRecord(BaseModel):
    question_response_id: str
    response_id: str
    question_id: str
    survey_id: str
    application_id: str
    department_id: Optional[str] = None
    respondent_email: str
    question_kind: QuestionKind
    text_value: Optional[str] = None
    numeric_value: Optional[float] = None
    date_value: Optional[str] = None
    selected_options: Optional[str] = None
    matrix_values: Optional[str] = None
    signature_ref: Optional[str] = None
    comment_value: Optional[str] = None
    takeout_status: TakeoutStatus = TakeoutStatus.ACTIVE
    takeout_reason: Optional[str] = None
    status_version: int = 0
    submitted_at: Optional[str] = None

    def answer(self) -> AnswerValue:
        return decode_answer(self.question_kind, self.model_dump())


class HistoryEntry(BaseModel):
    entry_id: str
    response_id: str
    question_id: str
    sequence_no: int
    action: ApprovalAction
    from_status: TakeoutStatus
    to_status: TakeoutStatus
    actor_id: str
    actor_role: str
    reason: Optional[str] = None
    created_at: str


class TransitionResult(BaseModel):
    question_response_id: str
    response_id: str
    question_id: str
    status: TakeoutStatus
    entry: HistoryEntry


class DuplicateCheck(BaseModel):
    is_duplicate: bool
    matched_response_ids: List[str] = Field(default_factory=list)


class RespondentInfo(BaseModel):
    name: str
    email: str
    department_id: Optional[str] = None


class AnswerSubmission(BaseModel):
    question_id: str
    value: Dict[str, Any] = Field(default_factory=dict)


class SubmitResponseRequest(BaseModel):
    respondent: RespondentInfo
    application_ids: List[str]
    answers: List[AnswerSubmission] = Field(default_factory=list)


class SubmissionResult(BaseModel):
    survey_id: str
    response_ids: List[str]


class DuplicateCheckRequest(BaseModel):
    respondent_email: str
    application_ids: List[str]


class Respondent(BaseModel):
    response_id: str
    respondent_name: Optional[str] = None
    respondent_email: str
    application_id: str
    department_id: Optional[str] = None
    submitted_at: Optional[str] = None
    duplicate_count: int = 1
    is_duplicate: bool = False


class ReasonBody(BaseModel):
    reason: Optional[str] = None


BulkOperation = Literal["propose", "approve", "reject", "cancel"]


class BulkItem(BaseModel):
    response_id: str
    question_id: str


class BulkRequest(BaseModel):
    operation: BulkOperation
    items: List[BulkItem]
    reason: Optional[str] = None


class BulkFailure(BaseModel):
    item: BulkItem
    error_kind: str
    message: str


class BulkResult(BaseModel):
    operation: BulkOperation
    succeeded: List[BulkItem] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)


class TakeoutQueueItem(BaseModel):
    question_response_id: str
    response_id: str
    question_id: str
    survey_id: str
    application_id: str
    department_id: Optional[str] = None
    respondent_email: str
    takeout_status: TakeoutStatus
    takeout_reason: Optional[str] = None
    proposed_by: Optional[str] = None
    proposed_at: Optional[str] = None


class BestComment(BaseModel):
    question_response_id: str
    response_id: str
    question_id: str
    survey_id: Optional[str] = None
    application_id: Optional[str] = None
    department_id: Optional[str] = None
    comment: Optional[str] = None
    curator_id: str
    curated_at: str
    feedback_text: Optional[str] = None
    feedback_author_id: Optional[str] = None
    feedback_at: Optional[str] = None


class FeedbackBody(BaseModel):
    feedback_text: Optional[str] = None


class QuestionComparison(BaseModel):
    question_id: str
    question_text: Optional[str] = None
    question_kind: QuestionKind
    total_responses: int
    takeout_count: int
    avg_before: Optional[float] = None
    avg_after: Optional[float] = None
    takeout_reason: str = ""


class Comparison(BaseModel):
    survey_id: str
    function_id: Optional[str] = None
    per_question: List[QuestionComparison] = Field(default_factory=list)
    overall_avg_before: Optional[float] = None
    overall_avg_after: Optional[float] = None


class StatusCounts(BaseModel):
    active: int = 0
    proposed_takeout: int = 0
    taken_out: int = 0
    rejected: int = 0
    total: int = 0


class QuestionStatusCounts(StatusCounts):
    question_id: str
    question_text: Optional[str] = None


class ApprovalStatistics(BaseModel):
    survey_id: str
    overall: StatusCounts
    by_question: List[QuestionStatusCounts] = Field(default_factory=list)


class FunctionScore(BaseModel):
    function_id: str
    function_name: str
    average_score: Optional[float] = None
    target_score: Optional[float] = None
    status: Optional[str] = None
    response_count: int = 0


__all__ = [
    "QuestionResponseRecord",
    "HistoryEntry",
    "TransitionResult",
    "DuplicateCheck",
    "RespondentInfo",
    "AnswerSubmission",
    "SubmitResponseRequest",
    "SubmissionResult",
    "DuplicateCheckRequest",
    "Respondent",
    "ReasonBody",
    "BulkOperation",
    "BulkItem",
    "BulkRequest",
    "BulkFailure",
    "BulkResult",
    "TakeoutQueueItem",
    "BestComment",
    "FeedbackBody",
    "QuestionComparison",
    "Comparison",
    "StatusCounts",
    "QuestionStatusCounts",
    "ApprovalStatistics",
    "FunctionScore",
]
