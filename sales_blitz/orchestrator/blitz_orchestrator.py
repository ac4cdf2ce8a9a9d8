"""Blitz orchestrator - categorization runs with cache refresh and a bounded worker pool"""

import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
from pydantic import ValidationError
from sales_blitz.constants import CacheState, RunStatus
from sales_blitz.models.account import AccountProfile, BlitzAccount
from sales_blitz.models.aggregate import AccountAggregate
from sales_blitz.models.blitz_config import BlitzConfig
from sales_blitz.models.categorization import (
    CategorizationCacheEntry,
    CategorizationResult,
    CategorizationRunResult,
)
from sales_blitz.models.transaction import CanonicalRecord
from sales_blitz.orchestrator.cache_manager import CategorizationCache, create_categorization_cache
from sales_blitz.orchestrator.retry_handler import retry_with_exponential_backoff
from sales_blitz.pipeline.aggregator import aggregate
from sales_blitz.pipeline.canonicalizer import canonicalize, group_by_account
from sales_blitz.pipeline.classifier import AIAssistedClassifier, Classifier, RuleBasedClassifier
from sales_blitz.tools.ai_oracle import LLMClassificationOracle
from sales_blitz.tools.record_source import RecordSource
from sales_blitz.utils.config_loader import load_blitz_config
from sales_blitz.utils.errors import AggregationError, CacheError, DataSourceError
from sales_blitz.utils.logging import get_logger
from sales_blitz.utils.metrics import (
    accounts_categorized,
    categorization_run_duration,
    categorization_runs,
)

logger = get_logger(__name__)

# How often a waiting run re-checks its cancel signal, in seconds
CANCEL_POLL_INTERVAL = 0.1


class BlitzOrchestrator:
    """Runs categorization for one organization at a time"""

    def __init__(
        self,
        config: Optional[BlitzConfig] = None,
        record_source: Optional[RecordSource] = None,
        cache: Optional[CategorizationCache] = None,
        classifier: Optional[Classifier] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.config = config or load_blitz_config()
        self.record_source = record_source or RecordSource()
        self.cache = cache or create_categorization_cache(self.config.cache_ttl, self.config.cache_backend)
        self.rule_classifier = RuleBasedClassifier.from_config(self.config)
        self.classifier = classifier or self._build_classifier()
        self.clock = clock

    def _build_classifier(self) -> Classifier:
        if self.config.ai_enabled:
            logger.info("AI-assisted categorization enabled", model=self.config.ai_model)
            return AIAssistedClassifier(LLMClassificationOracle(model=self.config.ai_model), self.rule_classifier)
        return self.rule_classifier

    def force_recategorize(self, organization_id: str,
                           cancel_event: Optional[threading.Event] = None) -> CategorizationRunResult:
        """Invalidate the organization's cache and recategorize every account"""
        return self.run_categorization(organization_id, force=True, cancel_event=cancel_event)

    def run_categorization(
        self,
        organization_id: str,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None
    ) -> CategorizationRunResult:
        """
        Execute one categorization run.

        Args:
            organization_id: Organization to categorize
            force: Invalidate all cached categorizations first
            cancel_event: Set to abandon the run; finished cache writes are kept

        Returns:
            CategorizationRunResult

        Raises:
            DataSourceError: If the organization's records cannot be read
        """
        run_id = str(uuid.uuid4())
        started_at = self.clock()
        start_time = time.time()
        cancel_event = cancel_event or threading.Event()
        run_logger = logger.bind(run_id=run_id, organization_id=organization_id)

        run_logger.info("Starting categorization run", forced=force)

        try:
            records, invalid_rows = retry_with_exponential_backoff(
                self.record_source.load_records,
                organization_id,
                max_retries=self.config.data_source_retries,
                base_delay=self.config.data_source_retry_delay,
                retry_on=(DataSourceError,)
            )
        except DataSourceError as e:
            categorization_runs.labels(status=RunStatus.FAILED.value).inc()
            run_logger.error(f"Categorization run failed: {e}")
            raise

        profiles = {p.account_name: p for p in self.record_source.load_accounts(organization_id)}

        if force:
            try:
                self.cache.invalidate_organization(organization_id)
            except CacheError as e:
                run_logger.error(f"Cache invalidation failed, recategorizing anyway: {e}")

        report = canonicalize(r for r in records if r.organization_id == organization_id)
        now = self.clock()

        aggregates: List[Tuple[AccountAggregate, AccountProfile]] = []
        for account_name, account_records in group_by_account(report.records).items():
            profile = self._resolve_profile(profiles.get(account_name), account_name, account_records)
            try:
                agg = aggregate(account_records, profile, self.config.baseline_months, self.config.recent_months, now)
            except (AggregationError, ValidationError) as e:
                run_logger.error(f"Skipping account that could not be aggregated: {e}", account=account_name)
                continue
            aggregates.append((agg, profile))

        results: Dict[str, CategorizationResult] = {}
        categorized_at: Dict[str, datetime] = {}
        to_classify: List[AccountAggregate] = []
        cache_hits = 0

        for agg, _ in aggregates:
            entry = None if force else self._read_cache(organization_id, agg.account_id, now)
            if entry is not None:
                cache_hits += 1
                results[agg.account_id] = CategorizationResult(
                    account_id=agg.account_id,
                    category=entry.category,
                    confidence=entry.confidence if entry.confidence is not None else 1.0,
                    reasoning=entry.reasoning or "",
                    is_ai_categorized=entry.is_ai_categorized,
                )
                categorized_at[agg.account_id] = entry.categorized_at
                accounts_categorized.labels(category=entry.category.value, source="cache").inc()
            else:
                to_classify.append(agg)

        fresh, not_persisted = self._recategorize(organization_id, to_classify, cancel_event)
        for account_id, (result, written_at) in fresh.items():
            results[account_id] = result
            categorized_at[account_id] = written_at

        accounts = [
            self._to_blitz_account(agg, profile, results[agg.account_id], categorized_at[agg.account_id])
            for agg, profile in aggregates
        ]
        accounts.sort(key=lambda a: a.baseline_average, reverse=True)

        status = RunStatus.CANCELLED if cancel_event.is_set() else RunStatus.COMPLETED
        ai_used = isinstance(self.classifier, AIAssistedClassifier)
        fresh_results = [result for result, _ in fresh.values()]

        summary = CategorizationRunResult(
            run_id=run_id,
            organization_id=organization_id,
            status=status,
            forced=force,
            started_at=started_at,
            completed_at=self.clock(),
            records_loaded=len(records),
            records_deduplicated=report.duplicates_dropped,
            records_excluded=report.excluded_count + invalid_rows,
            cache_hits=cache_hits,
            recategorized=len(fresh) - len(not_persisted),
            ai_categorized=sum(1 for r in fresh_results if r.is_ai_categorized),
            ai_fallbacks=sum(1 for r in fresh_results if not r.is_ai_categorized) if ai_used else 0,
            not_persisted=not_persisted,
            accounts=accounts,
        )

        duration = time.time() - start_time
        categorization_run_duration.observe(duration)
        categorization_runs.labels(status=status.value).inc()

        run_logger.info(
            f"Categorization run {status.value} ({duration:.1f}s)",
            accounts=len(accounts),
            cache_hits=cache_hits,
            recategorized=summary.recategorized,
            not_persisted=len(not_persisted)
        )
        return summary

    def _read_cache(self, organization_id: str, account_id: str,
                    now: datetime) -> Optional[CategorizationCacheEntry]:
        """Valid cached entry, or None when the account needs recategorizing"""
        try:
            state, entry = self.cache.lookup(organization_id, account_id, now)
        except (CacheError, TypeError, ValueError) as e:
            logger.warning(f"Cache read failed, recategorizing: {e}", account_id=account_id)
            return None
        return entry if state == CacheState.CACHED_VALID else None

    def _recategorize(
        self,
        organization_id: str,
        aggregates: List[AccountAggregate],
        cancel_event: threading.Event
    ) -> Tuple[Dict[str, Tuple[CategorizationResult, datetime]], List[str]]:
        """
        Classify accounts on the worker pool and write each result as it lands.

        Accounts left unfinished by a cancellation get the rule-based category
        without a cache write, so they stay stale.

        Returns:
            ({account_id: (result, categorized_at)}, [account_ids not written to the cache])
        """
        fresh: Dict[str, Tuple[CategorizationResult, datetime]] = {}
        not_persisted: List[str] = []

        if not aggregates:
            return fresh, not_persisted

        logger.info(f"Recategorizing {len(aggregates)} accounts", organization_id=organization_id,
                    max_workers=self.config.max_workers)

        executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
        try:
            future_to_agg: Dict[Future, AccountAggregate] = {}
            for agg in aggregates:
                if cancel_event.is_set():
                    break
                future_to_agg[executor.submit(self._classify_and_store, organization_id, agg, cancel_event)] = agg

            pending = set(future_to_agg)
            while pending:
                done, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    agg = future_to_agg[future]
                    if future.cancelled():
                        continue
                    result, written_at, persisted = future.result()
                    fresh[agg.account_id] = (result, written_at)
                    if not persisted:
                        not_persisted.append(agg.account_id)
                if cancel_event.is_set():
                    for future in pending:
                        future.cancel()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        for agg in aggregates:
            if agg.account_id not in fresh:
                fresh[agg.account_id] = (self.rule_classifier.classify(agg), self.clock())
                not_persisted.append(agg.account_id)

        return fresh, not_persisted

    def _classify_and_store(
        self,
        organization_id: str,
        agg: AccountAggregate,
        cancel_event: threading.Event
    ) -> Tuple[CategorizationResult, datetime, bool]:
        """Worker: classify one account, then write its cache entry unless the run was abandoned"""
        self.cache.begin_recategorization(organization_id, agg.account_id)
        try:
            try:
                result = self.classifier.classify(agg)
            except Exception as e:
                logger.error(f"Classifier failed, using rule-based category: {e}", account_id=agg.account_id)
                result = self.rule_classifier.classify(agg)

            written_at = self.clock()
            source = "ai" if result.is_ai_categorized else "rules"
            accounts_categorized.labels(category=result.category.value, source=source).inc()

            if cancel_event.is_set():
                return result, written_at, False

            try:
                self.cache.put(CategorizationCacheEntry.from_result(organization_id, result, written_at))
            except CacheError as e:
                logger.error(f"Cache write failed: {e}", account_id=agg.account_id)
                return result, written_at, False

            return result, written_at, True
        finally:
            self.cache.end_recategorization(organization_id, agg.account_id)

    @staticmethod
    def _resolve_profile(profile: Optional[AccountProfile], account_name: str,
                         records: List[CanonicalRecord]) -> AccountProfile:
        """
        Registry profile with region/distributor gaps filled from the records.

        An account missing from the registry is keyed by its name.
        """
        region = next((r.record.region for r in records if r.record.region), None)
        distributor = next((r.record.distributor for r in records if r.record.distributor), None)

        if profile is None:
            return AccountProfile(
                account_id=account_name,
                account_name=account_name,
                region=region,
                distributor=distributor,
            )

        return profile.model_copy(update={
            'region': profile.region or region,
            'distributor': profile.distributor or distributor,
        })

    @staticmethod
    def _to_blitz_account(agg: AccountAggregate, profile: AccountProfile,
                          result: CategorizationResult, categorized_at: datetime) -> BlitzAccount:
        return BlitzAccount(
            **agg.model_dump(),
            category=result.category,
            categorized_at=categorized_at,
            is_ai_categorized=result.is_ai_categorized,
            confidence=result.confidence,
            reasoning=result.reasoning or None,
            region=profile.region,
            premise_type=profile.premise_type,
            distributor=profile.distributor,
        )
