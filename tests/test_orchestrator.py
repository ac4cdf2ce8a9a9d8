"""Tests for the orchestrator and categorization runs"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch
import pytest
from sales_blitz.constants import BlitzCategory, CacheState, PremiseType, RunStatus
from sales_blitz.models.categorization import CategorizationCacheEntry, OracleVerdict
from sales_blitz.orchestrator.blitz_orchestrator import BlitzOrchestrator
from sales_blitz.orchestrator.cache_manager import CategorizationCache
from sales_blitz.orchestrator.retry_handler import retry_with_exponential_backoff
from sales_blitz.pipeline.classifier import AIAssistedClassifier, Classifier, RuleBasedClassifier
from sales_blitz.tools.record_source import RecordSource, query_gold_tables
from sales_blitz.utils.errors import AggregationError, BlitzSystemError, CacheError, DataSourceError, LLMError

ORG = "org_demo"

EXPECTED_CATEGORIES = {
    "Acme Bar": BlitzCategory.LARGE_LOSS,
    "Corner Liquors": BlitzCategory.LARGE_ACTIVE,
    "Harbor Cafe": BlitzCategory.ONE_TIME,
    "Old Mill Tavern": BlitzCategory.INACTIVE,
    "Sunset Grill": BlitzCategory.SMALL_ACTIVE,
}


class Clock:
    """Settable clock for TTL tests"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class CancellingClassifier(Classifier):
    """Rule-based classifier that raises the cancel signal on its nth call"""

    def __init__(self, cancel_event, cancel_on_call):
        self.rules = RuleBasedClassifier()
        self.cancel_event = cancel_event
        self.cancel_on_call = cancel_on_call
        self.calls = 0

    def classify(self, aggregate):
        self.calls += 1
        if self.calls == self.cancel_on_call:
            self.cancel_event.set()
        return self.rules.classify(aggregate)


@pytest.fixture
def clock(run_time):
    return Clock(run_time)


@pytest.fixture
def orchestrator(config, clock):
    return BlitzOrchestrator(config=config, record_source=RecordSource(), clock=clock)


def test_orchestrator_initialization():
    """Test that orchestrator initializes from the default configuration"""
    orchestrator = BlitzOrchestrator()
    assert orchestrator.config is not None
    assert orchestrator.cache is not None
    assert isinstance(orchestrator.classifier, RuleBasedClassifier)


def test_ai_enabled_config_builds_ai_classifier(config):
    orchestrator = BlitzOrchestrator(config=config.model_copy(update={'ai_enabled': True}))

    assert isinstance(orchestrator.classifier, AIAssistedClassifier)


def test_full_categorization_run(orchestrator, run_time):
    """Integration test - full run over the fixture data set"""
    result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    assert result.organization_id == ORG
    assert result.records_loaded == 27
    assert result.records_deduplicated == 2
    assert result.records_excluded == 2
    assert result.cache_hits == 0
    assert result.recategorized == 5
    assert result.not_persisted == []

    categories = {a.account_name: a.category for a in result.accounts}
    assert categories == EXPECTED_CATEGORIES
    assert all(a.categorized_at == run_time for a in result.accounts)


def test_accounts_sorted_by_baseline_descending(orchestrator):
    result = orchestrator.run_categorization(ORG)

    baselines = [a.baseline_average for a in result.accounts]
    assert baselines == sorted(baselines, reverse=True)
    assert result.accounts[0].account_name == "Acme Bar"


def test_registry_metadata_is_attached(orchestrator):
    accounts = {a.account_name: a for a in orchestrator.run_categorization(ORG).accounts}

    acme = accounts["Acme Bar"]
    assert acme.account_id == "acc_001"
    assert acme.region == "Southeast"
    assert acme.premise_type == PremiseType.ON_PREMISE
    assert acme.revenue_at_risk == pytest.approx(386.4)

    # Registry has no distributor, records do
    assert accounts["Corner Liquors"].distributor == "Empire Wholesale"
    # Unknown premise type in the registry
    assert accounts["Sunset Grill"].premise_type == PremiseType.UNCLASSIFIED


def test_unregistered_account_is_keyed_by_name(orchestrator):
    accounts = {a.account_name: a for a in orchestrator.run_categorization(ORG).accounts}

    harbor = accounts["Harbor Cafe"]
    assert harbor.account_id == "Harbor Cafe"
    assert harbor.region == "West"
    assert harbor.distributor == "Coastal Distributing"


def test_second_run_is_served_from_cache(orchestrator):
    first = orchestrator.run_categorization(ORG)
    second = orchestrator.run_categorization(ORG)

    assert second.cache_hits == 5
    assert second.recategorized == 0
    assert {a.account_id: a.category for a in second.accounts} == {a.account_id: a.category for a in first.accounts}


def test_stale_entries_are_recategorized(orchestrator, clock, run_time):
    orchestrator.run_categorization(ORG)

    clock.now = run_time + timedelta(days=31)
    result = orchestrator.run_categorization(ORG)

    assert result.cache_hits == 0
    assert result.recategorized == 5
    assert all(a.categorized_at == clock.now for a in result.accounts)


def test_force_recategorize_ignores_valid_entries(orchestrator, clock, run_time):
    orchestrator.run_categorization(ORG)
    clock.now = run_time + timedelta(days=1)

    result = orchestrator.force_recategorize(ORG)

    assert result.forced
    assert result.cache_hits == 0
    assert result.recategorized == 5
    assert orchestrator.cache.get_state(ORG, "acc_001", clock.now) == CacheState.CACHED_VALID
    assert all(e.categorized_at == clock.now for e in orchestrator.cache.entries(ORG))


def test_oracle_failure_is_isolated_to_its_account(config, clock):
    def oracle_answer(summary):
        if summary.account_name == "Acme Bar":
            raise LLMError("upstream timeout")
        return OracleVerdict(category="small_active", confidence=0.6, reasoning="Steady.")

    oracle = MagicMock()
    oracle.classify.side_effect = oracle_answer
    classifier = AIAssistedClassifier(oracle, RuleBasedClassifier.from_config(config))
    orchestrator = BlitzOrchestrator(config=config, record_source=RecordSource(), classifier=classifier, clock=clock)

    result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    assert result.ai_categorized == 4
    assert result.ai_fallbacks == 1

    accounts = {a.account_name: a for a in result.accounts}
    assert accounts["Acme Bar"].category == BlitzCategory.LARGE_LOSS
    assert not accounts["Acme Bar"].is_ai_categorized
    assert accounts["Corner Liquors"].category == BlitzCategory.SMALL_ACTIVE
    assert accounts["Corner Liquors"].is_ai_categorized


def test_cancellation_keeps_finished_writes(config, clock):
    cancel_event = threading.Event()
    orchestrator = BlitzOrchestrator(
        config=config.model_copy(update={'max_workers': 1}),
        record_source=RecordSource(),
        classifier=CancellingClassifier(cancel_event, cancel_on_call=3),
        clock=clock
    )

    result = orchestrator.run_categorization(ORG, cancel_event=cancel_event)

    assert result.status == RunStatus.CANCELLED
    assert len(result.accounts) == 5
    assert len(result.not_persisted) == 3
    assert result.recategorized == 2
    assert len(orchestrator.cache.entries(ORG)) == 2

    # Unwritten accounts still carry a category and stay uncached
    for account_id in result.not_persisted:
        assert orchestrator.cache.get_state(ORG, account_id, clock.now) == CacheState.UNCATEGORIZED
    assert {a.account_name: a.category for a in result.accounts} == EXPECTED_CATEGORIES


def test_cancel_before_dispatch(orchestrator):
    cancel_event = threading.Event()
    cancel_event.set()

    result = orchestrator.run_categorization(ORG, cancel_event=cancel_event)

    assert result.status == RunStatus.CANCELLED
    assert len(result.not_persisted) == 5
    assert orchestrator.cache.entries(ORG) == []
    assert {a.account_name: a.category for a in result.accounts} == EXPECTED_CATEGORIES


def test_cache_write_failure_is_not_fatal(config, clock):
    store = MagicMock()
    store.get.return_value = None
    store.put.side_effect = CacheError("cache down")
    orchestrator = BlitzOrchestrator(
        config=config,
        record_source=RecordSource(),
        cache=CategorizationCache(config.cache_ttl, store),
        clock=clock
    )

    result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    assert len(result.accounts) == 5
    assert len(result.not_persisted) == 5


def test_data_source_failure_fails_the_run(config, clock):
    query = MagicMock(side_effect=Exception("warehouse unreachable"))
    orchestrator = BlitzOrchestrator(config=config, record_source=RecordSource(query=query), clock=clock)

    with pytest.raises(DataSourceError):
        orchestrator.run_categorization(ORG)

    assert query.call_count == config.data_source_retries


def test_transient_data_source_failure_is_retried(config, clock):
    attempts = []

    def flaky_query(sql, parameters=None):
        attempts.append(sql)
        if len(attempts) == 1:
            raise Exception("connection reset")
        return query_gold_tables(sql, parameters)

    orchestrator = BlitzOrchestrator(config=config, record_source=RecordSource(query=flaky_query), clock=clock)

    result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    assert len(result.accounts) == 5


def test_unknown_organization_yields_empty_run(orchestrator):
    result = orchestrator.run_categorization("org_missing")

    assert result.status == RunStatus.COMPLETED
    assert result.accounts == []


def test_bad_case_size_does_not_abort_other_accounts(config, clock, make_record):
    good_pub = [
        make_record(organization_id=ORG, account_name="Good Pub", order_id=f"GP-{month}",
                    order_date=date(2025, month, 10), quantity=2)
        for month in range(1, 12)
    ]
    bad_bar = make_record(organization_id=ORG, account_name="Bad Bar", order_id="BB-1",
                          order_date=date(2025, 11, 3), quantity=24, quantity_unit="bottles",
                          case_size=float("nan"))
    source = MagicMock()
    source.load_records.return_value = (good_pub + [bad_bar], 0)
    source.load_accounts.return_value = []
    orchestrator = BlitzOrchestrator(config=config, record_source=source, clock=clock)

    result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    accounts = {a.account_name: a for a in result.accounts}
    assert accounts["Good Pub"].category == BlitzCategory.LARGE_ACTIVE
    assert accounts["Bad Bar"].lifetime_volume == 2.0


def test_aggregation_failure_skips_only_that_account(orchestrator):
    from sales_blitz.pipeline.aggregator import aggregate as real_aggregate

    def failing_aggregate(records, profile, *args, **kwargs):
        if profile.account_name == "Harbor Cafe":
            raise AggregationError("unusable records")
        return real_aggregate(records, profile, *args, **kwargs)

    with patch("sales_blitz.orchestrator.blitz_orchestrator.aggregate", side_effect=failing_aggregate):
        result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    expected = {name: c for name, c in EXPECTED_CATEGORIES.items() if name != "Harbor Cafe"}
    assert {a.account_name: a.category for a in result.accounts} == expected


class MeetingClassifier(Classifier):
    """Rule-based classifier that holds Acme Bar until two runs are both classifying it"""

    def __init__(self):
        self.rules = RuleBasedClassifier()
        self.barrier = threading.Barrier(2, timeout=5)
        self.cache = None
        self.observed = []

    def classify(self, aggregate):
        if aggregate.account_id == "acc_001":
            self.barrier.wait()
            self.observed.append(self.cache.get_state(ORG, "acc_001", datetime.now()))
        return self.rules.classify(aggregate)


def test_overlapping_forced_runs_leave_consistent_cache(config, clock, run_time):
    classifier = MeetingClassifier()
    orchestrator = BlitzOrchestrator(config=config, record_source=RecordSource(), classifier=classifier, clock=clock)
    classifier.cache = orchestrator.cache

    with ThreadPoolExecutor(max_workers=2) as pool:
        runs = [pool.submit(orchestrator.force_recategorize, ORG) for _ in range(2)]
        results = [run.result(timeout=30) for run in runs]

    assert all(r.status == RunStatus.COMPLETED for r in results)
    # Each run observed the account while it was itself still in flight
    assert classifier.observed == [CacheState.RECATEGORIZING, CacheState.RECATEGORIZING]

    entries = orchestrator.cache.entries(ORG)
    names = {a.account_id: a.account_name for a in results[0].accounts}
    assert sorted(e.account_id for e in entries) == sorted(names)
    for entry in entries:
        assert entry.category == EXPECTED_CATEGORIES[names[entry.account_id]]
        assert entry.categorized_at == run_time
        assert orchestrator.cache.get_state(ORG, entry.account_id, run_time) == CacheState.CACHED_VALID


def test_unreadable_cached_timestamp_is_treated_as_miss(config, clock, run_time):
    # Built without validation, as a foreign writer could leave it
    aware_entry = CategorizationCacheEntry.model_construct(
        organization_id=ORG, account_id="acc_001", category=BlitzCategory.SMALL_ACTIVE,
        categorized_at=run_time.replace(tzinfo=timezone.utc), is_ai_categorized=False,
        confidence=None, reasoning=None,
    )
    store = MagicMock()
    store.get.side_effect = lambda org, account_id: aware_entry if account_id == "acc_001" else None
    orchestrator = BlitzOrchestrator(
        config=config,
        record_source=RecordSource(),
        cache=CategorizationCache(config.cache_ttl, store),
        clock=clock
    )

    result = orchestrator.run_categorization(ORG)

    assert result.status == RunStatus.COMPLETED
    assert result.cache_hits == 0
    assert {a.account_name: a.category for a in result.accounts} == EXPECTED_CATEGORIES


def test_retry_handler():
    """Test retry logic with exponential backoff"""
    attempts = []

    def failing_func():
        attempts.append(1)
        if len(attempts) < 3:
            raise Exception("Test failure")
        return "success"

    result = retry_with_exponential_backoff(failing_func, max_retries=5, base_delay=0)
    assert result == "success"
    assert len(attempts) == 3


def test_retry_handler_exhaustion():
    """Test that retry handler raises error after max attempts"""
    def always_fail():
        raise Exception("Always fails")

    with pytest.raises(BlitzSystemError):
        retry_with_exponential_backoff(always_fail, max_retries=3, base_delay=0)


def test_retry_handler_only_retries_listed_errors():
    attempts = []

    def wrong_kind():
        attempts.append(1)
        raise ValueError("not retryable")

    with pytest.raises(ValueError):
        retry_with_exponential_backoff(wrong_kind, max_retries=3, base_delay=0, retry_on=(DataSourceError,))
    assert len(attempts) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
