"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"dps_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"dps_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"dps_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"dps_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

REDIS_UP = Gauge("dps_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("dps_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("dps_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("dps_postgres_latency_seconds", "Postgres ping latency (seconds)")

RATING_EVENTS = Counter(
	"rating_events_total",
	"Rating events processed by type",
	["type"],
)

RATING_DAYS_FINALIZED = Counter(
	"rating_days_finalized_total",
	"Past days locked into rating history",
	["result"],
)

RATING_DEGRADED_COMPONENTS = Counter(
	"rating_degraded_components_total",
	"Score components that fell back to neutral because a data source failed",
	["component"],
)

RATING_PERSISTENCE_FAILURES = Counter(
	"rating_persistence_failures_total",
	"Rating ledger writes that failed",
	["op"],
)

RATING_RECOMPUTE_DURATION = Histogram(
	"rating_recompute_seconds",
	"Time spent finalizing and recomputing a user's rating",
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def inc_rating_event(event_type: str) -> None:
	RATING_EVENTS.labels(type=event_type).inc()


def inc_rating_finalized(result: str, count: int = 1) -> None:
	if count:
		RATING_DAYS_FINALIZED.labels(result=result).inc(count)


def inc_rating_degraded(component: str) -> None:
	RATING_DEGRADED_COMPONENTS.labels(component=component).inc()


def inc_rating_persistence_failure(op: str) -> None:
	RATING_PERSISTENCE_FAILURES.labels(op=op).inc()


def observe_rating_recompute(elapsed_seconds: float) -> None:
	RATING_RECOMPUTE_DURATION.observe(elapsed_seconds)
