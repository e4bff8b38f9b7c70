"""
Turn the model's lesson reply into a ParsedLesson.

The model is asked for JSON but may answer in prose. A ```json block (or the
whole reply) is tried first; anything else goes through the text fallback,
which builds deterministic materials for every requested student.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from features.ai_lessons.models.domain import (
    DifferentiationData,
    LessonContent,
    LessonGenerationRequest,
    ParsedLesson,
    StudentMaterial,
    TeacherGuidance,
    WorksheetContent,
)
from shared.utils.constants import DEFAULT_LESSON_CONFIDENCE

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "AI-Generated Lesson"
DEFAULT_OBJECTIVES = ["Practice target skills", "Build confidence", "Apply learning"]
DEFAULT_MATERIALS = "All materials included on worksheets - just print!"
DEFAULT_DURATION = 30

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_TITLE_LINE = re.compile(r".*Title:\s*")
_STUDENT_LABEL = re.compile(r"student\s*(\d+)", re.IGNORECASE)

READING_SUBJECTS = ("reading", "phonics")


def parse_lesson_response(response: str, request: LessonGenerationRequest) -> ParsedLesson:
    """
    Parse a lesson reply.

    Args:
        response: Raw model output
        request: The generation request (student order, type, duration)

    Returns:
        ParsedLesson, from JSON when possible and the text fallback otherwise
    """
    payload = _extract_json(response)
    if payload is not None:
        try:
            parsed = _normalize_json(payload, request)
        except ValidationError as e:
            logger.warning(f"Structured lesson did not validate, using text fallback: {e}")
        else:
            if parsed.content.student_materials:
                logger.info(json.dumps({"step": "LESSON_PARSE", "mode": "json"}))
                return parsed
            logger.warning("Structured lesson named none of the requested students, using text fallback")

    logger.info(json.dumps({"step": "LESSON_PARSE", "mode": "text_fallback"}))
    return _parse_text(response, request)


def _extract_json(response: str) -> Optional[Dict[str, Any]]:
    """Return the reply's JSON object if it has content.studentMaterials."""
    match = _JSON_FENCE.search(response)
    candidate = match.group(1) if match else response
    try:
        payload = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None

    if not isinstance(payload, dict):
        return None
    content = payload.get("content")
    if not isinstance(content, dict) or not content.get("studentMaterials"):
        return None
    return payload


def _normalize_json(payload: Dict[str, Any], request: LessonGenerationRequest) -> ParsedLesson:
    content = payload.get("content") or {}
    guidance = content.get("teacherGuidance") or {}

    lesson_type = payload.get("lessonType")
    if lesson_type not in ("individual", "group"):
        lesson_type = request.lesson_type

    data_confidence = payload.get("dataConfidence")
    if isinstance(data_confidence, bool) or not isinstance(data_confidence, (int, float)):
        data_confidence = DEFAULT_LESSON_CONFIDENCE

    # One worksheet per requested student; unknown or repeated ids are dropped
    student_materials: List[StudentMaterial] = []
    for raw in content.get("studentMaterials") or []:
        material = StudentMaterial.model_validate(raw)
        student_id = _resolve_student_id(material.student_id, request.student_ids)
        if student_id is None or any(m.student_id == student_id for m in student_materials):
            continue
        student_materials.append(material.model_copy(update={"student_id": student_id}))

    differentiation_map: Dict[str, DifferentiationData] = {}
    raw_map = payload.get("differentiationMap")
    if isinstance(raw_map, dict):
        for key, data in raw_map.items():
            student_id = _resolve_student_id(str(key), request.student_ids)
            if student_id is not None:
                differentiation_map[student_id] = DifferentiationData.model_validate(data)

    return ParsedLesson(
        lesson_type=lesson_type,
        content=LessonContent(
            title=content.get("title") or DEFAULT_TITLE,
            objectives=content.get("objectives") or list(DEFAULT_OBJECTIVES),
            duration=content.get("duration") or request.duration or DEFAULT_DURATION,
            materials=content.get("materials") or DEFAULT_MATERIALS,
            teacher_guidance=TeacherGuidance.model_validate(guidance),
            student_materials=student_materials,
        ),
        differentiation_map=differentiation_map,
        data_confidence=float(data_confidence),
    )


def _resolve_student_id(reference: str, student_ids: List[str]) -> Optional[str]:
    """Map a reply's student reference (a real id or the prompt's StudentN label) to a requested id."""
    if reference in student_ids:
        return reference
    match = _STUDENT_LABEL.fullmatch(reference.strip())
    if match and 1 <= int(match.group(1)) <= len(student_ids):
        return student_ids[int(match.group(1)) - 1]
    return None


def _parse_text(response: str, request: LessonGenerationRequest) -> ParsedLesson:
    title_line = next((line for line in response.split("\n") if "Title:" in line), None)
    title = _TITLE_LINE.sub("", title_line, count=1).strip() if title_line else ""
    title = title or DEFAULT_TITLE

    student_materials: List[StudentMaterial] = []
    differentiation_map: Dict[str, DifferentiationData] = {}
    guidance = TeacherGuidance()

    for level, student_id in enumerate(request.student_ids):
        problems = generate_problems(request.subject, level)
        student_materials.append(StudentMaterial(
            student_id=student_id,
            worksheet_content=WorksheetContent(
                title=f"{title} - Student {level + 1}",
                instructions="Complete all sections. Everything you need is on this worksheet!",
                problems=problems,
                visual_supports=generate_visual_supports(request.subject),
                exit_ticket={
                    "type": "short_answer",
                    "question": "What did you learn today?",
                    "lines": 3,
                },
            ),
            answer_key=answer_key_for(problems),
            accommodations=["Visual supports included", "Clear instructions", "Appropriate spacing"],
        ))

        differentiation_map[student_id] = DifferentiationData(
            level=f"Level {level + 1}",
            modifications=["Adjusted difficulty", "Visual supports"],
            scaffolds=["Step-by-step examples", "Reference charts"],
            data_used=["Performance data", "Assessment data"],
        )
        guidance.differentiation_notes[student_id] = f"Student {level + 1}: Differentiated materials"
        guidance.expected_completion_times[student_id] = 25 + level * 5
        guidance.support_levels[student_id] = "independent" if level == 0 else "minimal"

    return ParsedLesson(
        lesson_type=request.lesson_type,
        content=LessonContent(
            title=title,
            objectives=list(DEFAULT_OBJECTIVES),
            duration=request.duration or DEFAULT_DURATION,
            materials=DEFAULT_MATERIALS,
            teacher_guidance=guidance,
            student_materials=student_materials,
        ),
        differentiation_map=differentiation_map,
        data_confidence=DEFAULT_LESSON_CONFIDENCE,
    )


def generate_problems(subject: str, level: int) -> List[Dict[str, Any]]:
    """5 + 2*level practice problems for the subject; harder levels get more and larger ones."""
    problems = []
    base = 10 + level * 10
    for i in range(1, 5 + level * 2 + 1):
        if subject == "math":
            problems.append({
                "id": str(i),
                "type": "computation",
                "question": f"{base} + {i}",
                "answer": base + i,
                "visualSupport": "number_line",
            })
        elif subject in READING_SUBJECTS:
            problems.append({
                "id": str(i),
                "type": "multiple_choice",
                "question": "Choose the word with short 'a' sound",
                "options": ["cat", "cake", "cute", "coat"],
                "answer": "cat",
            })
        else:
            problems.append({
                "id": str(i),
                "type": "fill_blank",
                "question": "Complete: The ___ is blue.",
                "answer": "sky",
            })
    return problems


def generate_visual_supports(subject: str) -> List[Dict[str, Any]]:
    if subject == "math":
        return [
            {"type": "number_line", "range": [0, 100], "increment": 10},
            {"type": "hundreds_chart", "highlighted": []},
        ]
    if subject in READING_SUBJECTS:
        return [
            {"type": "vowel_chart", "vowels": ["a", "e", "i", "o", "u"]},
            {"type": "word_family", "families": ["-at", "-et", "-it"]},
        ]
    return []


def answer_key_for(problems: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One answer-key entry per problem that carries an answer."""
    return [
        {"questionId": str(problem.get("id", index)), "answer": problem["answer"], "points": 1}
        for index, problem in enumerate(problems, start=1)
        if isinstance(problem, dict) and "answer" in problem
    ]
