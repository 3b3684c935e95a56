"""Prometheus metrics for Object Client."""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, REGISTRY


class ObjectClientMetrics:
    """Metrics collector for session negotiation and chunked transfers."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        # Session negotiation
        self.sessions_negotiated = Counter(
            "object_client_sessions_negotiated_total",
            "Total session tokens obtained",
            ["verb"],
            registry=registry,
        )
        self.sessions_failed = Counter(
            "object_client_sessions_failed_total",
            "Total failed session negotiations",
            ["verb", "reason"],
            registry=registry,
        )
        self.session_latency = Histogram(
            "object_client_session_latency_seconds",
            "Session handshake latency",
            buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=registry,
        )

        # Transfers
        self.bytes_uploaded = Counter(
            "object_client_bytes_uploaded_total",
            "Total payload bytes streamed to the node",
            registry=registry,
        )
        self.bytes_downloaded = Counter(
            "object_client_bytes_downloaded_total",
            "Total payload bytes received from the node",
            registry=registry,
        )
        self.chunks_sent = Counter(
            "object_client_chunks_sent_total",
            "Total data chunks sent",
            registry=registry,
        )
        self.chunks_received = Counter(
            "object_client_chunks_received_total",
            "Total data chunks received",
            registry=registry,
        )
        self.objects_uploaded = Counter(
            "object_client_objects_uploaded_total",
            "Total objects committed by the node",
            registry=registry,
        )
        self.objects_downloaded = Counter(
            "object_client_objects_downloaded_total",
            "Total objects fully fetched",
            registry=registry,
        )
        self.objects_deleted = Counter(
            "object_client_objects_deleted_total",
            "Total objects deleted",
            registry=registry,
        )
        self.transfer_errors = Counter(
            "object_client_transfer_errors_total",
            "Total failed transfers",
            ["direction", "reason"],
            registry=registry,
        )
        self.length_mismatches = Counter(
            "object_client_payload_length_mismatches_total",
            "Uploads whose streamed size differed from the declared size",
            registry=registry,
        )

        # Integrity verification
        self.verifications = Counter(
            "object_client_verifications_total",
            "Range hash verifications",
            ["result"],
            registry=registry,
        )

        # Latency
        self.upload_latency = Histogram(
            "object_client_upload_latency_seconds",
            "Upload latency",
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 60.0],
            registry=registry,
        )
        self.download_latency = Histogram(
            "object_client_download_latency_seconds",
            "Download latency",
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 60.0],
            registry=registry,
        )

        # System Info
        self.client_info = Info(
            "object_client",
            "Object client information",
            registry=registry,
        )


_metrics: ObjectClientMetrics | None = None


def get_metrics() -> ObjectClientMetrics:
    """Get the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = ObjectClientMetrics()
    return _metrics
