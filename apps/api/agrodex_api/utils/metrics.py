"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Verification metrics
verifications_total = Counter(
    "agrodex_verifications_total",
    "Total verification requests",
    ["outcome"],  # cached, fresh, not_found, failed
)

verification_duration = Histogram(
    "agrodex_verification_duration_seconds",
    "Verification pipeline duration",
    ["cached"],
)

# Narrative metrics
narrative_generations_total = Counter(
    "agrodex_narrative_generations_total",
    "Total narrative generations",
    ["kind", "outcome"],  # ok, degraded
)

narrative_latency = Histogram(
    "agrodex_narrative_latency_seconds",
    "Narrative generation latency",
    ["kind"],
)

# Ledger metrics
ledger_operations_total = Counter(
    "agrodex_ledger_operations_total",
    "Total ledger operations",
    ["operation", "status"],
)

orphaned_tokens_total = Counter(
    "agrodex_orphaned_tokens_total",
    "Certificate tokens created without a minted serial",
)

# Registration metrics
batches_registered_total = Counter(
    "agrodex_batches_registered_total",
    "Total batches registered",
)
