from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ProcessingType = Literal["educational_content", "syllabus_extraction"]


class CourseRef(BaseModel):
    id: int | str
    name: str
    code: str | None = None


class SyllabusEntities(BaseModel):
    course_code_name: str = ""
    term: str = ""
    office_hours: str = ""
    course_description: str = ""
    course_format: str = ""
    learning_objectives: list[str] = Field(default_factory=list)
    course_materials: list[str] = Field(default_factory=list)


class EducationalAnalysis(BaseModel):
    learning_objectives: list[str] = Field(default_factory=list)
    difficulty_level: str = "intermediate"
    recommended_actions: list[str] = Field(default_factory=list)
    ai_processed: bool = False


class AnalysisResult(BaseModel):
    """Outcome of ``ContentService.process_files``.

    ``raw_text`` is the free-text AI answer; the other fields are derived from
    it on a best-effort basis and may be empty.
    """

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    processing_type: ProcessingType = "educational_content"
    raw_text: str = ""
    summary: str = ""
    topics: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    educational_analysis: EducationalAnalysis = Field(default_factory=EducationalAnalysis)
    syllabus_entities: SyllabusEntities | None = None
    files_uploaded: int = 0
    upload_results: list[dict[str, Any]] = Field(default_factory=list)
    files: list[dict[str, Any]] = Field(default_factory=list)
    analysis_method: str = "none"
    confidence_score: float = 0.0
    content_type: str = "educational"
    fallback_reason: str | None = None
    note: str | None = None
    error: str | None = None
    mock: bool = False
    educational_content: dict[str, Any] | None = None
    course_context: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def learning_objectives(self) -> list[str]:
        return self.educational_analysis.learning_objectives


class ProcessingOptions(BaseModel):
    processing_type: ProcessingType = "educational_content"
    knowledge_base: str = "educational_content"
    tags: list[str] = Field(default_factory=lambda: ["educational", "brightspace"])
    difficulty_level: str | None = None
    model: str | None = None


class OperationResult(BaseModel):
    name: str
    success: bool
    status: int | None = None
    outcome: str | None = None
    data: Any = None
    error: str | None = None


class PublishResult(BaseModel):
    success: bool
    partial: bool = False
    course: dict[str, Any] | None = None
    operations: list[OperationResult] = Field(default_factory=list)
    files: list[dict[str, Any]] = Field(default_factory=list)
    summary: str = ""
    timestamp: str | None = None


# ----------------------------------------------------------------------
# request bodies
# ----------------------------------------------------------------------
class ContentRequest(BaseModel):
    """Body of the create-announcement/discussion/survey endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    course_id: int | str = Field(validation_alias=AliasChoices("courseId", "course_id"))
    title: str | None = None
    text: str | None = None
    html: str | None = None


class PublishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: int | str = Field(validation_alias=AliasChoices("courseId", "course_id"))
    analysis: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("analysis", "amplifyResults", "amplify_results"),
    )
    announce: bool = True
