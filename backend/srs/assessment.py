"""Assessment engine for evaluating learner responses.

Choice, true/false and matching cards are graded locally. Open responses
are handed to a grading collaborator (an LLM by default); when grading is
unavailable the learner rates themselves instead.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from backend.llm_client import LLMClient
from backend.srs.cards import Card, CardKind
from backend.srs.errors import GradingUnavailable, InvalidResponseShape
from backend.srs.sm2 import PASSING_RATING

logger = logging.getLogger(__name__)

PERFECT_SCORE = 5
WRONG_SCORE = 1
PARTIAL_MATCH_SCORE = 2

# Ratings a learner may pick by hand; 0 only comes from evaluator fallback
MANUAL_RATINGS = (1, 3, 4, 5)
AUTO_RATING = PERFECT_SCORE

UNAVAILABLE_MESSAGE = "evaluation unavailable"
INVALID_RESPONSE_MESSAGE = "invalid response"


@dataclass
class Feedback:
    """The uniform result of evaluating a response."""

    score: int  # 0-5
    passed: bool
    message: str
    expected: str = ""
    explanation: str = ""


@dataclass
class GradeResult:
    """What a grading collaborator returns for an open response."""

    score: int
    message: str
    passed: bool


class Grader(Protocol):
    """Grades free-text answers against a canonical answer."""

    async def grade(self, prompt: str, expected: str, submitted: str) -> GradeResult: ...


def is_auto_rated(card: Card, feedback: Feedback) -> bool:
    """Objective cards answered correctly are rated 5 without review."""
    return card.kind.is_objective and feedback.passed


def _require_text(response: Any) -> str:
    if not isinstance(response, str):
        raise InvalidResponseShape(f"expected a text answer, got {type(response).__name__}")
    return response


def assess_choice(selected_option: Any, correct_answer: str) -> Feedback:
    """Assess a multiple-choice response by mutual containment."""
    selected = _require_text(selected_option).strip().lower()
    if not selected:
        raise InvalidResponseShape("no option selected")
    expected = correct_answer.strip().lower()
    passed = expected in selected or selected in expected
    return Feedback(
        score=PERFECT_SCORE if passed else WRONG_SCORE,
        passed=passed,
        message="Correct!" if passed else f"Incorrect. The correct answer is: {correct_answer}",
        expected=correct_answer,
    )


def assess_boolean(response: Any, correct_answer: str) -> Feedback:
    """Assess a true/false judgment with a case-insensitive exact match."""
    passed = _require_text(response).strip().lower() == correct_answer.strip().lower()
    return Feedback(
        score=PERFECT_SCORE if passed else WRONG_SCORE,
        passed=passed,
        message="Correct!" if passed else f"Incorrect. The statement is {correct_answer}.",
        expected=correct_answer,
    )


def assess_matching(response: Any, card: Card) -> Feedback:
    """Assess a left-to-right matching against the card's pairs.

    All pairs right scores 5, some right scores 2, none right scores 0.
    """
    if not isinstance(response, Mapping):
        raise InvalidResponseShape(f"expected a mapping of pairs, got {type(response).__name__}")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in response.items()):
        raise InvalidResponseShape("matching pairs must map text to text")

    expected = "\n".join(f"{pair.left} -> {pair.right}" for pair in card.matching_pairs)
    total = len(card.matching_pairs)
    correct = sum(1 for pair in card.matching_pairs if response.get(pair.left) == pair.right)

    if total and correct == total:
        return Feedback(
            score=PERFECT_SCORE,
            passed=True,
            message="Perfect! Every pair is correct.",
            expected=expected,
        )
    return Feedback(
        score=PARTIAL_MATCH_SCORE if correct > 0 else 0,
        passed=False,
        message=f"You matched {correct} of {total} pairs.",
        expected=expected,
    )


class AnswerEvaluator:
    """Grades any card kind and never raises for bad input or grader failure."""

    def __init__(self, grader: Grader | None = None) -> None:
        self.grader = grader

    async def evaluate(self, card: Card, response: Any) -> Feedback:
        try:
            if card.kind is CardKind.CHOICE:
                feedback = assess_choice(response, card.answer)
            elif card.kind is CardKind.BOOLEAN:
                feedback = assess_boolean(response, card.answer)
            elif card.kind is CardKind.MATCHING:
                feedback = assess_matching(response, card)
            else:
                feedback = await self._evaluate_open(card, response)
        except InvalidResponseShape as exc:
            logger.warning("Invalid response for card %s: %s", card.id, exc)
            feedback = Feedback(score=0, passed=False, message=INVALID_RESPONSE_MESSAGE)

        feedback.expected = feedback.expected or card.answer
        feedback.explanation = card.explanation
        return feedback

    async def _evaluate_open(self, card: Card, response: Any) -> Feedback:
        submitted = response if isinstance(response, str) else ""
        if not submitted.strip() or self.grader is None:
            return Feedback(score=0, passed=False, message=UNAVAILABLE_MESSAGE)

        try:
            result = await self.grader.grade(card.prompt, card.answer, submitted)
            if result is None:
                raise GradingUnavailable("grader returned nothing")
        except Exception:
            logger.exception("Grading failed for card %s, falling back to self-rating", card.id)
            return Feedback(score=0, passed=False, message=UNAVAILABLE_MESSAGE)

        return Feedback(
            score=max(0, min(PERFECT_SCORE, int(result.score))),
            passed=bool(result.passed),
            message=result.message,
        )


GRADING_SYSTEM_PROMPT = """\
You are a strict university examiner grading a student's answer against \
the official answer key. Respond with JSON only."""

GRADING_USER_PROMPT = """\
Question: {prompt}
Answer key: {expected}
Student answer: {actual}

Grade the student's answer. Return JSON:
{{
  "score": 0-5 (0 = wrong or blank, 3 = acceptable, 5 = perfect),
  "feedback": "Brief feedback in at most 2 sentences",
  "passed": true if score >= 3 else false
}}"""


class LLMGrader:
    """Grades open responses with the Anthropic client."""

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm

    async def grade(self, prompt: str, expected: str, submitted: str) -> GradeResult:
        if not submitted.strip():
            return GradeResult(score=0, message="No answer provided.", passed=False)

        user_prompt = GRADING_USER_PROMPT.format(prompt=prompt, expected=expected, actual=submitted)
        text = await asyncio.to_thread(
            self.llm.create_message,
            prompt=user_prompt,
            system=GRADING_SYSTEM_PROMPT,
            max_tokens=256,
            temperature=0.1,
        )
        return parse_grade_response(text)


def parse_grade_response(response: str) -> GradeResult:
    """Parse the grader's JSON reply.

    Raises:
        GradingUnavailable: If the reply is not usable JSON.
    """
    text = response.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GradingUnavailable("Failed to parse grading response") from exc
    if not isinstance(data, dict) or "score" not in data:
        raise GradingUnavailable("Grading response has no score")

    try:
        score = max(0, min(PERFECT_SCORE, int(data["score"])))
    except (TypeError, ValueError) as exc:
        raise GradingUnavailable(f"Invalid score: {data['score']!r}") from exc

    passed = data.get("passed")
    if not isinstance(passed, bool):
        passed = score >= PASSING_RATING
    return GradeResult(
        score=score,
        message=str(data.get("feedback", "")),
        passed=passed,
    )
