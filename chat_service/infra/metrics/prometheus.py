"""Prometheus metrics for the realtime gateway and delivery pipeline."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and multiple app instances don't collide with
# the process-global default registry
REGISTRY = CollectorRegistry()

# Fan-out sizes: a two-party conversation usually has 1-4 open sockets,
# multi-tab users push it higher
FANOUT_BUCKETS = (0, 1, 2, 3, 4, 6, 8, 12, 16, 32)

# Latency buckets for send_message end to end (1ms to 5s)
DELIVERY_LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)

# Connection metrics
realtime_connections_active = Gauge(
    "realtime_connections_active",
    "Currently open WebSocket connections",
    registry=REGISTRY,
)

realtime_connections_total = Counter(
    "realtime_connections_total",
    "WebSocket connection attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

# Presence metrics
realtime_users_online = Gauge(
    "realtime_users_online",
    "Users with at least one open connection",
    registry=REGISTRY,
)

realtime_presence_transitions_total = Counter(
    "realtime_presence_transitions_total",
    "Presence transitions broadcast, by resulting status",
    ["status"],
    registry=REGISTRY,
)

realtime_presence_write_failures_total = Counter(
    "realtime_presence_write_failures_total",
    "Durable presence writes that failed and were skipped",
    registry=REGISTRY,
)

# Message delivery metrics
realtime_messages_total = Counter(
    "realtime_messages_total",
    "Submitted messages by result (delivered, rejected, failed)",
    ["result"],
    registry=REGISTRY,
)

realtime_fanout_recipients = Histogram(
    "realtime_fanout_recipients",
    "Connections reached by a single room broadcast",
    buckets=FANOUT_BUCKETS,
    registry=REGISTRY,
)

realtime_delivery_duration_seconds = Histogram(
    "realtime_delivery_duration_seconds",
    "Time from receiving send_message to acknowledging it",
    buckets=DELIVERY_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# Inbound frame metrics
realtime_frames_total = Counter(
    "realtime_frames_total",
    "Inbound client frames by event type",
    ["type"],
    registry=REGISTRY,
)
