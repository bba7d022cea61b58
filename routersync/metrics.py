from prometheus_client import Counter, Histogram

JOB_DURATION = Histogram(
    "job_duration_seconds",
    "Background job duration",
    ["task", "status"],
)

ROUTER_SYNC_RESULTS = Counter(
    "router_sync_results_total",
    "Per-record reconciliation results",
    ["entity", "action"],
)

ROUTER_SYNC_RUNS = Counter(
    "router_sync_runs_total",
    "Entity class reconciliation runs",
    ["entity", "status"],
)


def observe_job(task_name: str, status: str, duration: float) -> None:
    JOB_DURATION.labels(task=task_name, status=status).observe(duration)


def record_sync_results(entity: str, counts: dict[str, int]) -> None:
    for action, count in counts.items():
        if count:
            ROUTER_SYNC_RESULTS.labels(entity=entity, action=action).inc(count)


def record_sync_run(entity: str, status: str) -> None:
    ROUTER_SYNC_RUNS.labels(entity=entity, status=status).inc()
