"""Prometheus metrics definitions"""

from prometheus_client import Counter, Histogram


# Run health
categorization_run_duration = Histogram(
    'blitz_categorization_run_duration_seconds',
    'Time to complete one organization categorization run',
    buckets=[0.5, 1, 5, 15, 60, 300]
)

categorization_runs = Counter(
    'blitz_categorization_runs_total',
    'Categorization runs by outcome',
    labelnames=['status']  # completed, cancelled, failed
)

# Record hygiene
records_excluded = Counter(
    'blitz_records_excluded_total',
    'Records left out of aggregation',
    labelnames=['reason']  # unschedulable, invalid_quantity, invalid_row
)

records_deduplicated = Counter(
    'blitz_records_deduplicated_total',
    'Duplicate records dropped before aggregation'
)

# Classification
accounts_categorized = Counter(
    'blitz_accounts_categorized_total',
    'Accounts categorized',
    labelnames=['category', 'source']  # source: rules, ai, cache
)

cache_lookups = Counter(
    'blitz_cache_lookups_total',
    'Categorization cache reads',
    labelnames=['result']  # hit, stale, miss
)

ai_fallbacks = Counter(
    'blitz_ai_fallbacks_total',
    'AI categorizations replaced by the rule-based result',
    labelnames=['reason']  # llm_error, bad_response, unexpected
)

# LLM cost & usage tracking
llm_tokens_counter = Counter(
    'llm_tokens_used_total',
    'Total LLM tokens consumed',
    labelnames=['model_name', 'agent_name']
)

llm_cost_counter = Counter(
    'llm_cost_dollars_total',
    'Total LLM cost in USD',
    labelnames=['model_name']
)

llm_api_latency = Histogram(
    'llm_api_latency_seconds',
    'Latency of LLM API calls',
    labelnames=['model_name'],
    buckets=[0.5, 1, 2, 5, 10, 30]
)

llm_rate_limit_hits = Counter(
    'llm_rate_limit_hits_total',
    'Number of LLM rate limit errors',
    labelnames=['model_name']
)
