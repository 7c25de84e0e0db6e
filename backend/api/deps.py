"""Shared FastAPI dependencies."""

import logging

from backend.config import settings
from backend.database import async_session
from backend.llm_client import get_llm_client
from backend.srs.assessment import AnswerEvaluator, LLMGrader
from backend.storage import SQLStore, StudyRepository

logger = logging.getLogger(__name__)


def get_repository() -> StudyRepository:
    """Repository over the SQL-backed keyed store."""
    return StudyRepository(SQLStore(async_session))


def get_evaluator() -> AnswerEvaluator:
    """Evaluator with LLM grading when an API key is configured."""
    if not settings.anthropic_api_key:
        logger.debug("No Anthropic API key set, open responses will be self-rated")
        return AnswerEvaluator()
    return AnswerEvaluator(grader=LLMGrader(get_llm_client()))
