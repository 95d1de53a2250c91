from __future__ import annotations

from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from backend.core.parsing import (
    DEFAULT_MODULES,
    classify_label,
    extract_assessments,
    extract_json_payload,
    extract_modules,
    extract_syllabus_entities,
    has_usable_content,
    is_incomplete_response,
    parse_analysis,
)

MARKDOWN_ANALYSIS = """## Summary
This unit introduces numerical methods for solving equations.

## Key Topics
- Root finding
- Interpolation
- Numerical integration

## Learning Objectives
1. Apply Newton's method to nonlinear equations
2. Construct interpolating polynomials from data

**Difficulty Level:** Intermediate

## Insights
- Worked examples make the error analysis concrete for students.
"""

JSON_ANALYSIS = """Here is the analysis you asked for:
```json
{
  "summary": "A survey of machine learning fundamentals.",
  "topics": ["Supervised learning", "Model evaluation"],
  "learning_objectives": ["Explain the bias-variance trade-off", "Evaluate a classifier with cross-validation"],
  "insights": ["Hands-on notebooks reinforce each lecture"],
  "difficulty_level": "Advanced"
}
```
"""

SYLLABUS_TEXT = """Course Code and Name: MATH 3620, Numerical Analysis
Term: Fall 2026
Office Hours: Tuesdays 2-4pm, Room 210
Course Description: An introduction to numerical methods.
Course Format: 3 credit hours, 15 weeks
Learning Objectives:
- Analyze the convergence of iterative methods
- Implement interpolation schemes in Python
Course Materials:
- Numerical Analysis by Burden and Faires
- Python 3 with NumPy
"""


@pytest.mark.parametrize(
    "content",
    [
        None,
        "",
        "   ",
        "Chat endpoint response retrieved",
        "Error: Could not fetch data from S3 for key abc",
        "Files are still being processed. Please try again later.",
    ],
)
def test_incomplete_responses_are_detected(content):
    assert is_incomplete_response(content) is True
    assert has_usable_content(content) is False


def test_usable_content_rules():
    assert has_usable_content("The material covers limits, derivatives and integrals.") is True
    assert has_usable_content("Too short") is False
    assert has_usable_content("Unable to process the uploaded document at this time") is False
    assert is_incomplete_response("The material covers limits and derivatives.") is False


def test_classify_label_maps_common_headings():
    assert classify_label("Key Topics") == "topics"
    assert classify_label("Course Learning Objectives") == "learning_objectives"
    assert classify_label("Office Hours Times and Location") == "office_hours"
    assert classify_label("Course Code and Name") == "course_code_name"
    assert classify_label("Apply Newton's method to equations") is None


def test_extract_json_payload_from_code_block_and_prose():
    assert extract_json_payload(JSON_ANALYSIS)["difficulty_level"] == "Advanced"
    assert extract_json_payload('Result: {"summary": "x"} end') == {"summary": "x"}
    assert extract_json_payload("no json here") is None
    assert extract_json_payload('["a list"]') is None


def test_parse_analysis_prefers_structured_output():
    fields = parse_analysis(JSON_ANALYSIS)

    assert fields.method == "structured_output"
    assert fields.summary == "A survey of machine learning fundamentals."
    assert fields.topics == ["Supervised learning", "Model evaluation"]
    assert fields.learning_objectives[0] == "Explain the bias-variance trade-off"
    assert fields.insights == ["Hands-on notebooks reinforce each lecture"]
    assert fields.difficulty_level == "advanced"


def test_parse_analysis_falls_back_to_section_matching():
    fields = parse_analysis(MARKDOWN_ANALYSIS)

    assert fields.method == "pattern_matching"
    assert fields.summary == "This unit introduces numerical methods for solving equations."
    assert fields.topics == ["Root finding", "Interpolation", "Numerical integration"]
    assert fields.learning_objectives == [
        "Apply Newton's method to nonlinear equations",
        "Construct interpolating polynomials from data",
    ]
    assert fields.insights == ["Worked examples make the error analysis concrete for students."]
    assert fields.difficulty_level == "intermediate"


def test_parse_analysis_of_empty_text_is_empty():
    fields = parse_analysis("")

    assert fields.summary is None
    assert fields.topics == []
    assert fields.method == "none"


def test_extract_syllabus_entities_from_labelled_text():
    entities = extract_syllabus_entities(SYLLABUS_TEXT)

    assert entities.course_code_name == "MATH 3620, Numerical Analysis"
    assert entities.term == "Fall 2026"
    assert entities.office_hours == "Tuesdays 2-4pm, Room 210"
    assert entities.course_description == "An introduction to numerical methods."
    assert entities.course_format == "3 credit hours, 15 weeks"
    assert entities.learning_objectives == [
        "Analyze the convergence of iterative methods",
        "Implement interpolation schemes in Python",
    ]
    assert entities.course_materials == ["Numerical Analysis by Burden and Faires", "Python 3 with NumPy"]


def test_extract_syllabus_entities_from_json():
    text = (
        '{"course_code_name": "CS 1101, Programming", "term": "Spring 2026", '
        '"office_hours": "Not specified", "course_materials": ["Laptop", "Python"]}'
    )

    entities = extract_syllabus_entities(text)

    assert entities.course_code_name == "CS 1101, Programming"
    assert entities.term == "Spring 2026"
    assert entities.course_materials == ["Laptop", "Python"]
    assert entities.course_description == ""


def test_extract_modules_and_assessments():
    plan = """Module 1: Foundations
Module 2: Root Finding
Week 3 - Interpolation
Assessments:
- Weekly quiz on each module
- Final project: numerical solver
"""

    modules = extract_modules(plan)
    assessments = extract_assessments(plan)

    assert [module["title"] for module in modules] == [
        "Module 1: Foundations",
        "Module 2: Root Finding",
        "Week 3 - Interpolation",
    ]
    assert [(item["title"], item["type"]) for item in assessments] == [
        ("Weekly quiz on each module", "quiz"),
        ("Final project: numerical solver", "assignment"),
    ]


def test_course_plan_defaults_when_nothing_found():
    assert [module["title"] for module in extract_modules(None)] == list(DEFAULT_MODULES)
    assert len(extract_assessments("nothing relevant")) == 3
