"""AI classification oracle: account summary in, category verdict out"""

import json
from abc import ABC, abstractmethod
from typing import Callable, Optional
from pydantic import ValidationError
from sales_blitz.constants import BlitzCategory
from sales_blitz.models.categorization import AccountSummary, OracleVerdict
from sales_blitz.tools.llm_client import call_llm
from sales_blitz.utils.errors import OracleResponseError
from sales_blitz.utils.logging import get_logger

logger = get_logger(__name__)


class ClassificationOracle(ABC):
    """External classifier contract: classify(summary) -> verdict"""

    @abstractmethod
    def classify(self, summary: AccountSummary) -> OracleVerdict:
        ...


def build_prompt(summary: AccountSummary) -> str:
    """Prompt for one account; the summary is embedded as JSON"""
    categories = "|".join(c.value for c in BlitzCategory)
    threshold = summary.large_threshold

    return f"""Categorize this beverage distribution customer account by its purchasing trajectory.

ACCOUNT DATA:
{json.dumps(summary.model_dump(), indent=2)}

CATEGORIES:
- large_active: ordering {threshold}+ cases/month and holding steady
- small_active: ordering under {threshold} cases/month with consistent activity
- large_loss: baseline of {threshold}+ cases/month now sharply declining or stopped
- small_loss: baseline under {threshold} cases/month that has declined or stopped
- one_time: ordered exactly once
- inactive: no orders in {summary.inactive_days}+ days

baseline_average is the average over the older months, recent_average over the latest months,
trend_percent the change between them, monthly_pattern the months that had orders.

Respond with ONLY a JSON object (no markdown, no explanation):
{{
  "category": "{categories}",
  "confidence": 0.0 to 1.0,
  "reasoning": "1-2 sentences considering volume, trend and recency"
}}
"""


def strip_code_fences(raw: str) -> str:
    """Remove the markdown code fences LLMs sometimes wrap JSON in"""
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[-1]  # drop ```json or ``` line
        raw = raw.rsplit("```", 1)[0]  # drop trailing ```
    return raw.strip()


def parse_verdict(raw: str) -> OracleVerdict:
    """
    Parse an LLM answer into a verdict.

    Accepts either a bare object or {"categorizations": [obj]}. Confidence is
    clamped to [0, 1]; a missing or non-numeric confidence becomes None.

    Raises:
        OracleResponseError: If the answer is not JSON or names no valid category
    """
    try:
        payload = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"Oracle answer is not JSON: {e}")

    if isinstance(payload, dict) and isinstance(payload.get('categorizations'), list):
        items = payload['categorizations']
        payload = items[0] if items else {}

    if not isinstance(payload, dict):
        raise OracleResponseError("Oracle answer is not a JSON object")

    category = str(payload.get('category', '')).strip().lower()
    confidence = payload.get('confidence')
    try:
        confidence = min(max(float(confidence), 0.0), 1.0) if confidence is not None else None
    except (TypeError, ValueError):
        confidence = None

    try:
        return OracleVerdict(
            category=category,
            confidence=confidence,
            reasoning=payload.get('reasoning') or None,
        )
    except ValidationError as e:
        raise OracleResponseError(f"Oracle returned unknown category '{category}': {e}")


class LLMClassificationOracle(ClassificationOracle):
    """Oracle backed by an OpenRouter chat model"""

    def __init__(self, model: Optional[str] = None, llm_call: Callable[..., str] = call_llm,
                 max_retries: int = 3):
        self.model = model
        self.llm_call = llm_call
        self.max_retries = max_retries

    def classify(self, summary: AccountSummary) -> OracleVerdict:
        response = self.llm_call(
            build_prompt(summary),
            model=self.model,
            agent_name="BlitzCategorizer",
            max_retries=self.max_retries
        )
        verdict = parse_verdict(response)
        logger.debug(
            "Oracle verdict",
            account_name=summary.account_name,
            category=verdict.category.value,
            confidence=verdict.confidence
        )
        return verdict
