from __future__ import annotations
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

Confidence = Literal["high", "medium", "low"]
MatchConfidence = Literal["high", "medium", "low", "not_found"]
CDEStatus = Literal["comply", "deviate", "exception", "pending", "not_found"]
ReviewStatus = Literal["comply", "deviate", "exception", "pending"]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class BoundingBox(WireModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 0.1


class ExtractedRow(WireModel):
    id: str
    field: str
    value: str
    unit: Optional[str] = None
    section: Optional[str] = None
    spec_number: Optional[str] = Field(default=None, alias="specNumber")
    confidence: Confidence = "medium"
    page_number: Optional[int] = Field(default=None, alias="pageNumber")


class PageImage(WireModel):
    base64: str
    mime_type: str = Field(alias="mimeType")
    page_number: int = Field(alias="pageNumber")


class BatchFinding(WireModel):
    spec_id: str = Field(alias="specId")
    page_number: int = Field(alias="pageNumber")
    value: str
    unit: Optional[str] = None
    confidence: Confidence = "medium"
    bounding_box: Optional[BoundingBox] = Field(default=None, alias="boundingBox")
    status: CDEStatus = "deviate"
    explanation: str = "Found in submittal"


class SubmittalFinding(WireModel):
    id: str
    page_number: int = Field(alias="pageNumber")
    value: str
    unit: Optional[str] = None
    confidence: Confidence
    bounding_box: Optional[BoundingBox] = Field(default=None, alias="boundingBox")
    status: CDEStatus
    explanation: str


class SubmittalLocation(WireModel):
    page_number: int = Field(alias="pageNumber")
    bounding_box: Optional[BoundingBox] = Field(default=None, alias="boundingBox")


class SpecRowResult(WireModel):
    row_id: str = Field(alias="rowId")
    findings: List[SubmittalFinding] = Field(default_factory=list)
    status: CDEStatus = "not_found"
    match_confidence: MatchConfidence = Field(default="not_found", alias="matchConfidence")
    explanation: str = "No matching data found in submittal"
    submittal_value: Optional[str] = Field(default=None, alias="submittalValue")
    submittal_unit: Optional[str] = Field(default=None, alias="submittalUnit")
    submittal_location: Optional[SubmittalLocation] = Field(default=None, alias="submittalLocation")


class BatchError(WireModel):
    batch_index: int = Field(alias="batchIndex")
    row_ids: List[str] = Field(alias="rowIds")
    start_page: int = Field(alias="startPage")
    end_page: int = Field(alias="endPage")
    error: str
    kind: str
    attempts: int


class ComparisonSummary(WireModel):
    total_items: int = Field(alias="totalItems")
    comply: int = 0
    deviate: int = 0
    exception: int = 0
    pending: int = 0
    not_found: int = Field(default=0, alias="notFound")


class ComparisonReport(WireModel):
    results: List[SpecRowResult]
    summary: ComparisonSummary
    total_findings: int = Field(alias="totalFindings")
    batches_run: int = Field(alias="batchesRun")
    errors: List[BatchError] = Field(default_factory=list)


class ReportSummary(ComparisonSummary):
    reviewed: int = 0


class ComparisonInput(WireModel):
    """One row of a saved report as sent by the client, usually a SpecRowResult
    merged with the spec row it answers."""
    row_id: Optional[str] = Field(default=None, alias="rowId")
    spec_field: str = Field(alias="specField")
    spec_value: str = Field(alias="specValue")
    spec_unit: Optional[str] = Field(default=None, alias="specUnit")
    spec_section: Optional[str] = Field(default=None, alias="specSection")
    submittal_value: Optional[str] = Field(default=None, alias="submittalValue")
    submittal_unit: Optional[str] = Field(default=None, alias="submittalUnit")
    submittal_location: Optional[SubmittalLocation] = Field(default=None, alias="submittalLocation")
    findings: List[SubmittalFinding] = Field(default_factory=list)
    status: CDEStatus = "pending"
    match_confidence: MatchConfidence = Field(default="not_found", alias="matchConfidence")
    ai_explanation: str = Field(default="", alias="aiExplanation")
    user_comment: Optional[str] = Field(default=None, alias="userComment")
    is_reviewed: bool = Field(default=False, alias="isReviewed")
    reviewed_by: Optional[str] = Field(default=None, alias="reviewedBy")


class ComparisonResult(ComparisonInput):
    id: str
    reviewed_at: Optional[datetime] = Field(default=None, alias="reviewedAt")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
