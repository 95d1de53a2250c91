"""Prompt templates sent to the Amplify chat endpoint."""
from __future__ import annotations

from typing import Any

from backend.core.schema import ProcessingType, SyllabusEntities

EDUCATIONAL_ANALYSIS_PROMPT = """Please analyze the uploaded educational materials and provide:
1. A detailed summary of the content
2. Key topics and concepts covered
3. Learning objectives that can be derived
4. Educational insights and recommendations
5. Difficulty level assessment (beginner, intermediate, advanced or expert)
6. Suggestions for course integration

Respond with a single JSON object and nothing else, using exactly these keys:
{"summary": "...", "topics": ["..."], "learning_objectives": ["..."], "insights": ["..."], "difficulty_level": "...", "integration_suggestions": ["..."]}

If you cannot produce JSON, answer with labelled sections ("Summary:", "Topics:", "Learning Objectives:", "Insights:", "Difficulty Level:") instead.
Be specific and focus on educational value and practical applications."""

SYLLABUS_EXTRACTION_PROMPT = """Please extract the following specific information from this course syllabus document:

1. Course Code and Name (e.g., "MATH 3620, Numerical Analysis")
2. Term (e.g., "Fall 2026")
3. Office Hours Times and Location (exact times and either in-person location or online meeting link)
4. Course Description (a brief 3-5 sentence description including key topics, focus, or overall goals)
5. Course Format (credit hours, number of weeks, estimated time commitment per week)
6. Course Learning Objectives (3-5 specific objectives describing what students will be able to do or know)
7. Course Materials (textbooks, software, equipment, etc.)

Extract ONLY information that is explicitly stated in the document. If a field is not found, use "Not specified".

Respond with a single JSON object and nothing else, using exactly these keys:
{"course_code_name": "...", "term": "...", "office_hours": "...", "course_description": "...", "course_format": "...", "learning_objectives": ["..."], "course_materials": ["..."]}"""

PROMPTS: dict[str, str] = {
    "educational_content": EDUCATIONAL_ANALYSIS_PROMPT,
    "syllabus_extraction": SYLLABUS_EXTRACTION_PROMPT,
}

HEALTH_CHECK_PROMPT = "Hello, this is a health check."


def analysis_prompt(processing_type: ProcessingType) -> str:
    return PROMPTS.get(processing_type, EDUCATIONAL_ANALYSIS_PROMPT)


def educational_content_prompt(
    *,
    content_type: str = "module",
    difficulty_level: str = "intermediate",
    include_quiz: bool = False,
    include_assignment: bool = False,
) -> str:
    sections = ["A clear title and description", "Learning objectives", "Main content sections"]
    if include_quiz:
        sections.append("A knowledge check quiz")
    if include_assignment:
        sections.append("A practical assignment")
    numbered = "\n".join(f"{index}. {item}" for index, item in enumerate(sections, start=1))
    return (
        "Based on the uploaded educational materials, please generate a structured course module "
        "with the following specifications:\n"
        f"- Content type: {content_type}\n"
        f"- Difficulty level: {difficulty_level}\n"
        f"- Include quiz: {str(include_quiz).lower()}\n"
        f"- Include assignment: {str(include_assignment).lower()}\n\n"
        "Please provide a comprehensive educational module that includes:\n"
        f"{numbered}\n\n"
        "Format the response as a structured educational module suitable for Brightspace integration."
    )


def _join(values: list[Any]) -> str:
    return "; ".join(str(value) for value in values if value) or "Not specified"


def course_generation_prompt(entities: SyllabusEntities) -> str:
    return f"""Based on the following confirmed course syllabus information, please generate a comprehensive course structure for Brightspace LMS:

Course Information:
- Course: {entities.course_code_name or "Not specified"}
- Term: {entities.term or "Not specified"}
- Office Hours: {entities.office_hours or "Not specified"}
- Description: {entities.course_description or "Not specified"}
- Format: {entities.course_format or "Not specified"}
- Learning Objectives: {_join(entities.learning_objectives)}
- Materials: {_join(entities.course_materials)}

Please generate:
1. A detailed course module structure (4-6 modules, one per line as "Module N: Title")
2. Weekly breakdown with topics and activities
3. Assessment strategy aligned with learning objectives
4. Discussion forum topics
5. Assignment prompts that support the learning objectives
6. Integration suggestions for the specified course materials

Format the response as a structured course plan suitable for LMS implementation."""
