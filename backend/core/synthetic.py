"""Deterministic stand-in content.

Used by the mock Amplify gateway and by the orchestration fallback when the
files were uploaded but no usable analysis came back.
"""
from __future__ import annotations

from typing import Any, Sequence

from backend.domain import UploadedFile

RECOMMENDED_ACTIONS: tuple[str, ...] = (
    "Create interactive course module",
    "Generate comprehension quiz",
    "Develop practical assignments",
    "Add multimedia elements",
)


def _kinds(files: Sequence[UploadedFile]) -> tuple[bool, bool, bool]:
    types = [(item.mime_type or "unknown").lower() for item in files]
    has_images = any("image" in value for value in types)
    has_documents = any(
        marker in value for value in types for marker in ("pdf", "document", "text", "msword")
    )
    has_spreadsheets = any("spreadsheet" in value or "excel" in value for value in types)
    return has_images, has_documents, has_spreadsheets


def summary(files: Sequence[UploadedFile]) -> str:
    has_images, has_documents, has_spreadsheets = _kinds(files)
    content_types: list[str] = []
    if has_documents:
        content_types.append("educational documents")
    if has_images:
        content_types.append("visual content")
    if has_spreadsheets:
        content_types.append("data analytics")
    described = ", ".join(content_types) or "mixed content"
    return (
        f"Analyzed {len(files)} file(s) containing {described}. The content appears suitable for "
        "academic instruction and contains structured information that can be effectively "
        "integrated into course materials."
    )


def topics(files: Sequence[UploadedFile]) -> list[str]:
    result = ["Data Analysis", "Learning Objectives", "Course Content"]
    for item in files:
        name = item.name.lower()
        if "data" in name or "analytics" in name:
            result.extend(["Data Science", "Statistical Analysis"])
        if "machine" in name or "ai" in name.replace(".", " ").split():
            result.extend(["Machine Learning", "Artificial Intelligence"])
        if "programming" in name or "code" in name:
            result.extend(["Programming", "Software Development"])
    return list(dict.fromkeys(result))[:8]


def insights(files: Sequence[UploadedFile]) -> list[str]:
    has_images, has_documents, has_spreadsheets = _kinds(files)
    result = ["Content demonstrates clear educational structure and learning progression"]
    if has_documents:
        result.append("Documents contain well-organized information suitable for course modules")
    if has_images:
        result.append("Visual elements identified that can enhance student engagement")
    if has_spreadsheets:
        result.append("Data files detected with potential for interactive exercises")
    result.append("Material aligns with standard educational frameworks and learning objectives")
    return result


def learning_objectives(files: Sequence[UploadedFile]) -> list[str]:
    result = [
        "Students will be able to analyze and interpret the provided content",
        "Students will demonstrate understanding of key concepts presented",
    ]
    for item in files:
        name = item.name.lower()
        if "data" in name:
            result.append("Students will apply data analysis techniques to real-world problems")
        if "programming" in name:
            result.append("Students will implement programming solutions using best practices")
    return list(dict.fromkeys(result))[:5]


def analysis_payload(files: Sequence[UploadedFile]) -> dict[str, Any]:
    """A structured answer shaped like the one requested from the live API."""

    course_name = files[0].name.rsplit(".", 1)[0] if files else "Course"
    return {
        "summary": summary(files),
        "topics": topics(files),
        "learning_objectives": learning_objectives(files),
        "insights": insights(files),
        "difficulty_level": "intermediate",
        "course_code_name": course_name,
        "term": "Not specified",
        "office_hours": "Not specified",
        "course_description": summary(files),
        "course_format": "Not specified",
        "course_materials": [item.name for item in files],
    }


def quiz(topic_list: Sequence[str], insight_list: Sequence[str]) -> dict[str, Any]:
    return {
        "title": "Knowledge Check Quiz",
        "questions": [
            {
                "type": "multiple_choice",
                "question": "Based on the analyzed content, what is the main focus?",
                "options": list(topic_list[:4]) or ["Option A", "Option B", "Option C", "Option D"],
                "correct_answer": 0,
            },
            {
                "type": "short_answer",
                "question": "Explain one key insight from the provided materials.",
                "sample_answer": insight_list[0] if insight_list else "Sample answer based on content analysis",
            },
        ],
    }


def assignment() -> dict[str, Any]:
    return {
        "title": "Practical Application Assignment",
        "description": "Apply the concepts learned from the analyzed materials to solve a real-world problem.",
        "instructions": [
            "Review the key topics identified in the analysis",
            "Select one topic for in-depth exploration",
            "Create a presentation or report demonstrating your understanding",
            "Include practical examples and applications",
        ],
        "deliverables": [
            "Written report (1000-1500 words)",
            "Supporting materials or code samples",
            "Reflection on learning outcomes",
        ],
        "due_date": "2 weeks from assignment date",
    }
