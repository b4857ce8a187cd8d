"""
Prometheus collectors, exposed through the /metrics ASGI mount in main.py.
"""
from prometheus_client import Counter, Histogram

EVALUATIONS = Counter(
    "factora_score_evaluations_total",
    "Score evaluations by outcome",
    ["outcome"],   # ok | unclassified | UnknownModel | Timeout
)

EVALUATION_LATENCY = Histogram(
    "factora_score_evaluation_seconds",
    "Wall time of a score evaluation including the registry snapshot read",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

VERIFICATION_CHECKS = Counter(
    "factora_verification_checks_total",
    "Verification check results by status",
    ["status"],
)
