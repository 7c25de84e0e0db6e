"""Tests for answer evaluation and open-response grading."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.srs.assessment import (
    UNAVAILABLE_MESSAGE,
    AnswerEvaluator,
    GradeResult,
    LLMGrader,
    assess_boolean,
    assess_choice,
    is_auto_rated,
    parse_grade_response,
)
from backend.srs.cards import CardKind
from backend.srs.errors import GradingUnavailable, InvalidResponseShape
from helpers import make_card

PAIRS = [("heart", "cardio"), ("lung", "pulmo"), ("kidney", "nephro"), ("liver", "hepato")]


def _open_card():
    return make_card("open", kind=CardKind.OPEN_RESPONSE, answer="Mitochondria produce ATP")


# --- Local checks ---


class TestLocalChecks:
    def test_choice_exact(self) -> None:
        feedback = assess_choice("Paris", "Paris")
        assert feedback.passed
        assert feedback.score == 5

    def test_choice_case_insensitive_containment(self) -> None:
        assert assess_choice("a) PARIS", "Paris").passed
        assert assess_choice("paris", "A) Paris, France").passed

    def test_choice_wrong(self) -> None:
        feedback = assess_choice("Rome", "Paris")
        assert not feedback.passed
        assert feedback.score == 1
        assert "Paris" in feedback.message

    def test_choice_empty_is_invalid(self) -> None:
        with pytest.raises(InvalidResponseShape):
            assess_choice("   ", "Paris")

    def test_boolean(self) -> None:
        assert assess_boolean("TRUE", "true").passed
        assert assess_boolean(" false ", "False").passed
        feedback = assess_boolean("true", "false")
        assert not feedback.passed
        assert feedback.score == 1

    def test_boolean_requires_exact_word(self) -> None:
        assert not assess_boolean("t", "true").passed


# --- Evaluator ---


class TestAnswerEvaluator:
    @pytest.mark.asyncio
    async def test_choice_card(self) -> None:
        card = make_card("c")
        feedback = await AnswerEvaluator().evaluate(card, "paris")
        assert feedback.passed
        assert is_auto_rated(card, feedback)

    @pytest.mark.asyncio
    async def test_failed_choice_surfaces_explanation(self) -> None:
        card = make_card("c")
        feedback = await AnswerEvaluator().evaluate(card, "Rome")
        assert not is_auto_rated(card, feedback)
        assert feedback.expected == "Paris"
        assert feedback.explanation == "Because Paris"

    @pytest.mark.asyncio
    async def test_matching_all_correct(self) -> None:
        card = make_card("m", kind=CardKind.MATCHING, pairs=PAIRS)
        feedback = await AnswerEvaluator().evaluate(card, dict(PAIRS))
        assert feedback.score == 5
        assert feedback.passed
        assert is_auto_rated(card, feedback)

    @pytest.mark.asyncio
    async def test_matching_three_of_four(self) -> None:
        card = make_card("m", kind=CardKind.MATCHING, pairs=PAIRS)
        response = dict(PAIRS)
        response["liver"] = "nephro"
        feedback = await AnswerEvaluator().evaluate(card, response)
        assert feedback.score == 2
        assert not feedback.passed
        assert not is_auto_rated(card, feedback)
        assert "3 of 4" in feedback.message
        assert "heart -> cardio" in feedback.expected

    @pytest.mark.asyncio
    async def test_matching_none_correct(self) -> None:
        card = make_card("m", kind=CardKind.MATCHING, pairs=PAIRS)
        feedback = await AnswerEvaluator().evaluate(card, {"heart": "pulmo"})
        assert feedback.score == 0
        assert not feedback.passed

    @pytest.mark.asyncio
    async def test_matching_without_pairs_fails(self) -> None:
        card = make_card("m", kind=CardKind.MATCHING)
        feedback = await AnswerEvaluator().evaluate(card, {})
        assert feedback.score == 0
        assert not feedback.passed

    @pytest.mark.asyncio
    async def test_malformed_matching_scores_zero(self) -> None:
        card = make_card("m", kind=CardKind.MATCHING, pairs=PAIRS)
        feedback = await AnswerEvaluator().evaluate(card, "heart -> cardio")
        assert feedback.score == 0
        assert not feedback.passed

    @pytest.mark.asyncio
    async def test_malformed_choice_scores_zero(self) -> None:
        feedback = await AnswerEvaluator().evaluate(make_card("c"), {"a": "b"})
        assert feedback.score == 0
        assert not feedback.passed

    @pytest.mark.asyncio
    async def test_open_delegates_to_grader(self) -> None:
        grader = MagicMock()
        grader.grade = AsyncMock(return_value=GradeResult(score=4, message="Good", passed=True))
        card = _open_card()
        feedback = await AnswerEvaluator(grader).evaluate(card, "ATP comes from mitochondria")

        grader.grade.assert_awaited_once_with(card.prompt, card.answer, "ATP comes from mitochondria")
        assert feedback.score == 4
        assert feedback.passed
        assert feedback.message == "Good"
        # Open responses always need a manual rating
        assert not is_auto_rated(card, feedback)

    @pytest.mark.asyncio
    async def test_open_grader_score_clamped(self) -> None:
        grader = MagicMock()
        grader.grade = AsyncMock(return_value=GradeResult(score=9, message="", passed=True))
        feedback = await AnswerEvaluator(grader).evaluate(_open_card(), "answer")
        assert feedback.score == 5

    @pytest.mark.asyncio
    async def test_open_grader_failure_degrades(self) -> None:
        grader = MagicMock()
        grader.grade = AsyncMock(side_effect=RuntimeError("network down"))
        feedback = await AnswerEvaluator(grader).evaluate(_open_card(), "answer")
        assert feedback.score == 0
        assert not feedback.passed
        assert feedback.message == UNAVAILABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_open_grader_returns_nothing(self) -> None:
        grader = MagicMock()
        grader.grade = AsyncMock(return_value=None)
        feedback = await AnswerEvaluator(grader).evaluate(_open_card(), "answer")
        assert feedback.message == UNAVAILABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_open_empty_input_skips_grader(self) -> None:
        grader = MagicMock()
        grader.grade = AsyncMock()
        feedback = await AnswerEvaluator(grader).evaluate(_open_card(), "   ")
        grader.grade.assert_not_awaited()
        assert feedback.score == 0
        assert feedback.message == UNAVAILABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_open_without_grader(self) -> None:
        feedback = await AnswerEvaluator().evaluate(_open_card(), "answer")
        assert feedback.message == UNAVAILABLE_MESSAGE
        assert feedback.expected == "Mitochondria produce ATP"


# --- LLM grading ---


class TestLLMGrader:
    def test_parse_plain_json(self) -> None:
        result = parse_grade_response('{"score": 4, "feedback": "Nice", "passed": true}')
        assert result == GradeResult(score=4, message="Nice", passed=True)

    def test_parse_fenced_json(self) -> None:
        text = '```json\n{"score": 2, "feedback": "Missing detail", "passed": false}\n```'
        result = parse_grade_response(text)
        assert result.score == 2
        assert not result.passed

    def test_parse_clamps_and_infers_passed(self) -> None:
        result = parse_grade_response('{"score": -3}')
        assert result.score == 0
        assert not result.passed

    @pytest.mark.parametrize(
        "passed,score,expected",
        [('"false"', 5, True), ('"true"', 1, False), ("1", 2, False), ("null", 4, True), ("false", 5, False)],
    )
    def test_parse_passed_must_be_boolean(self, passed: str, score: int, expected: bool) -> None:
        result = parse_grade_response(f'{{"score": {score}, "passed": {passed}}}')
        assert result.passed is expected

    @pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"feedback": "x"}', '{"score": "high"}'])
    def test_parse_unusable(self, text: str) -> None:
        with pytest.raises(GradingUnavailable):
            parse_grade_response(text)

    @pytest.mark.asyncio
    async def test_grade_calls_llm(self) -> None:
        llm = MagicMock()
        llm.create_message.return_value = json.dumps({"score": 5, "feedback": "Perfect", "passed": True})
        result = await LLMGrader(llm).grade("What makes ATP?", "Mitochondria", "mitochondria")
        assert result.score == 5
        assert result.passed
        prompt = llm.create_message.call_args.kwargs["prompt"]
        assert "Mitochondria" in prompt
        assert "mitochondria" in prompt

    @pytest.mark.asyncio
    async def test_grade_empty_input_no_call(self) -> None:
        llm = MagicMock()
        result = await LLMGrader(llm).grade("Q", "A", "  ")
        llm.create_message.assert_not_called()
        assert result.score == 0
        assert not result.passed
