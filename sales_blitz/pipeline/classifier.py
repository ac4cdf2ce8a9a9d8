"""Trend classification: ordered decision list plus AI-assisted refinement"""

from abc import ABC, abstractmethod
from typing import Callable, List, NamedTuple, Optional
from sales_blitz.constants import (
    BlitzCategory,
    DEFAULT_INACTIVE_DAYS,
    DEFAULT_LARGE_THRESHOLD,
    DEFAULT_LOSS_RATIO,
    DEFAULT_ONE_TIME_ORDERS,
)
from sales_blitz.models.aggregate import AccountAggregate
from sales_blitz.models.categorization import AccountSummary, CategorizationResult
from sales_blitz.utils.errors import LLMError, OracleResponseError
from sales_blitz.utils.logging import get_logger
from sales_blitz.utils.metrics import ai_fallbacks

logger = get_logger(__name__)


class ClassificationThresholds(NamedTuple):
    large_threshold: float = DEFAULT_LARGE_THRESHOLD
    loss_ratio: float = DEFAULT_LOSS_RATIO
    inactive_days: int = DEFAULT_INACTIVE_DAYS
    one_time_orders: int = DEFAULT_ONE_TIME_ORDERS


class DecisionRule(NamedTuple):
    name: str
    category: BlitzCategory
    confidence: float
    predicate: Callable[[AccountAggregate, ClassificationThresholds], bool]
    explain: Callable[[AccountAggregate, ClassificationThresholds], str]


def _is_loss(agg: AccountAggregate, t: ClassificationThresholds) -> bool:
    return agg.recent_average <= agg.baseline_average * t.loss_ratio


# Evaluated top to bottom, first match wins
DECISION_RULES: List[DecisionRule] = [
    DecisionRule(
        name="one_time",
        category=BlitzCategory.ONE_TIME,
        confidence=1.0,
        predicate=lambda agg, t: agg.total_orders == t.one_time_orders,
        explain=lambda agg, t: "Account ordered only once and never returned.",
    ),
    DecisionRule(
        name="inactive",
        category=BlitzCategory.INACTIVE,
        confidence=0.9,
        predicate=lambda agg, t: agg.days_since_last_activity >= t.inactive_days,
        explain=lambda agg, t: f"No orders in the last {agg.days_since_last_activity} days.",
    ),
    DecisionRule(
        name="large_loss",
        category=BlitzCategory.LARGE_LOSS,
        confidence=0.85,
        predicate=lambda agg, t: agg.baseline_average >= t.large_threshold and _is_loss(agg, t),
        explain=lambda agg, t: (
            f"Previously strong account ({agg.baseline_average:.1f} cases/month baseline) "
            f"now at {agg.recent_average:.1f} cases/month ({agg.trend_percent:.0f}%)."
        ),
    ),
    DecisionRule(
        name="small_loss",
        category=BlitzCategory.SMALL_LOSS,
        confidence=0.8,
        predicate=lambda agg, t: (
            agg.baseline_average < t.large_threshold
            and _is_loss(agg, t)
            and agg.baseline_average > 0
        ),
        explain=lambda agg, t: (
            f"Account declining from {agg.baseline_average:.1f} cases/month baseline "
            f"with {agg.trend_percent:.0f}% trend."
        ),
    ),
    DecisionRule(
        name="large_active",
        category=BlitzCategory.LARGE_ACTIVE,
        confidence=0.8,
        predicate=lambda agg, t: agg.recent_average >= t.large_threshold,
        explain=lambda agg, t: f"High-volume account averaging {agg.recent_average:.1f} cases/month recently.",
    ),
    DecisionRule(
        name="small_active",
        category=BlitzCategory.SMALL_ACTIVE,
        confidence=0.75,
        predicate=lambda agg, t: True,
        explain=lambda agg, t: f"Lower-volume account averaging {agg.recent_average:.1f} cases/month recently.",
    ),
]


def match_rule(aggregate: AccountAggregate,
               thresholds: Optional[ClassificationThresholds] = None,
               rules: Optional[List[DecisionRule]] = None) -> DecisionRule:
    """Return the first rule whose predicate holds"""
    thresholds = thresholds or ClassificationThresholds()
    for rule in (DECISION_RULES if rules is None else rules):
        if rule.predicate(aggregate, thresholds):
            return rule
    # The last rule is unconditional; only a custom rule list can get here
    return DECISION_RULES[-1]


def classify(aggregate: AccountAggregate,
             large_threshold: float = DEFAULT_LARGE_THRESHOLD,
             loss_ratio: float = DEFAULT_LOSS_RATIO,
             inactive_days: int = DEFAULT_INACTIVE_DAYS,
             one_time_orders: int = DEFAULT_ONE_TIME_ORDERS) -> BlitzCategory:
    """
    Map aggregate statistics to a category. Pure and total.

    Args:
        aggregate: Account aggregate
        large_threshold: Cases/month separating large from small
        loss_ratio: Recent/baseline ratio at or below which volume counts as lost
        inactive_days: Days of silence before an account is inactive
        one_time_orders: Order count that marks a one-time account

    Returns:
        BlitzCategory
    """
    thresholds = ClassificationThresholds(large_threshold, loss_ratio, inactive_days, one_time_orders)
    return match_rule(aggregate, thresholds).category


class Classifier(ABC):
    """Produces a CategorizationResult for one account aggregate"""

    @abstractmethod
    def classify(self, aggregate: AccountAggregate) -> CategorizationResult:
        ...


class RuleBasedClassifier(Classifier):
    """Deterministic decision-list classifier"""

    def __init__(self, thresholds: Optional[ClassificationThresholds] = None):
        self.thresholds = thresholds or ClassificationThresholds()

    @classmethod
    def from_config(cls, config) -> "RuleBasedClassifier":
        return cls(ClassificationThresholds(
            large_threshold=config.large_threshold,
            loss_ratio=config.loss_ratio,
            inactive_days=config.inactive_days,
            one_time_orders=config.one_time_orders,
        ))

    def classify(self, aggregate: AccountAggregate) -> CategorizationResult:
        rule = match_rule(aggregate, self.thresholds)
        return CategorizationResult(
            account_id=aggregate.account_id,
            category=rule.category,
            confidence=rule.confidence,
            reasoning=rule.explain(aggregate, self.thresholds),
            rule=rule.name,
            is_ai_categorized=False,
        )


class AIAssistedClassifier(Classifier):
    """
    Asks the AI oracle and falls back to the decision list.

    The rule-based result is computed first so there is always an answer;
    an oracle error or unusable verdict never escapes this classifier.
    """

    def __init__(self, oracle, fallback: Optional[RuleBasedClassifier] = None):
        self.oracle = oracle
        self.fallback = fallback or RuleBasedClassifier()

    def summarize(self, aggregate: AccountAggregate) -> AccountSummary:
        return AccountSummary(
            account_name=aggregate.account_name,
            baseline_average=round(aggregate.baseline_average, 2),
            recent_average=round(aggregate.recent_average, 2),
            trend_percent=round(aggregate.trend_percent, 1),
            total_orders=aggregate.total_orders,
            days_since_last_activity=aggregate.days_since_last_activity,
            unique_months=aggregate.unique_months,
            monthly_pattern=aggregate.monthly_pattern,
            large_threshold=self.fallback.thresholds.large_threshold,
            inactive_days=self.fallback.thresholds.inactive_days,
        )

    def classify(self, aggregate: AccountAggregate) -> CategorizationResult:
        baseline = self.fallback.classify(aggregate)

        try:
            verdict = self.oracle.classify(self.summarize(aggregate))
        except LLMError as e:
            reason = "bad_response" if isinstance(e, OracleResponseError) else "llm_error"
            ai_fallbacks.labels(reason=reason).inc()
            logger.warning(
                "AI categorization failed, using rule-based category",
                account_id=aggregate.account_id,
                error=str(e),
                fallback_category=baseline.category.value
            )
            return baseline
        except Exception as e:
            ai_fallbacks.labels(reason="unexpected").inc()
            logger.error(
                "Unexpected AI categorization error, using rule-based category",
                account_id=aggregate.account_id,
                error=repr(e)
            )
            return baseline

        if verdict.category != baseline.category:
            logger.info(
                "AI category differs from rules",
                account_id=aggregate.account_id,
                ai_category=verdict.category.value,
                rule_category=baseline.category.value
            )

        return CategorizationResult(
            account_id=aggregate.account_id,
            category=verdict.category,
            confidence=verdict.confidence if verdict.confidence is not None else 0.5,
            reasoning=verdict.reasoning or "AI categorization",
            rule=None,
            is_ai_categorized=True,
        )
