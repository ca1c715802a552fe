"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"wastecycle_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"wastecycle_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"wastecycle_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"wastecycle_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

CHAT_ROOMS_RESOLVED = Counter(
	"wastecycle_chat_rooms_resolved_total",
	"Conversation lookups by outcome",
	["outcome"],
)

CHAT_REPAIRS = Counter(
	"wastecycle_chat_repairs_total",
	"Stored participant lists repaired",
	["reason"],
)

CHAT_DENIED = Counter(
	"wastecycle_chat_denied_total",
	"Conversation access denied to a non-participant",
)

CHAT_MESSAGES = Counter(
	"wastecycle_chat_messages_total",
	"Chat messages appended",
)

CHAT_NOTIFICATIONS = Counter(
	"wastecycle_chat_notifications_total",
	"New-message notifications dispatched",
	["result"],
)

RATE_LIMITED = Counter(
	"wastecycle_rate_limited_total",
	"Requests rejected by the rate limiter",
	["kind"],
)

REDIS_UP = Gauge("wastecycle_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("wastecycle_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("wastecycle_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("wastecycle_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"wastecycle_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"wastecycle_jobs_duration_seconds",
	"Background job duration in seconds",
	["name"],
	buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
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


def inc_chat_room_created() -> None:
	CHAT_ROOMS_RESOLVED.labels(outcome="created").inc()


def inc_chat_room_reused() -> None:
	CHAT_ROOMS_RESOLVED.labels(outcome="reused").inc()


def inc_chat_repair(reason: str) -> None:
	CHAT_REPAIRS.labels(reason=reason).inc()


def inc_chat_denied() -> None:
	CHAT_DENIED.inc()


def inc_chat_message() -> None:
	CHAT_MESSAGES.inc()


def inc_chat_notification(result: str) -> None:
	CHAT_NOTIFICATIONS.labels(result=result).inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED.labels(kind=kind).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
