"""ポーリングとリセット検出の OpenTelemetry メトリクス"""

from __future__ import annotations

from opentelemetry import metrics

_meter = metrics.get_meter("onwatch", version="0.1.0")

poll_total = _meter.create_counter(
    name="poll_total",
    description="Total number of provider polls",
    unit="1",
)

poll_errors_total = _meter.create_counter(
    name="poll_errors_total",
    description="Total number of failed provider fetches",
    unit="1",
)

poll_duration_seconds = _meter.create_histogram(
    name="poll_duration_seconds",
    description="Duration of one poll including storage writes",
    unit="s",
)

quota_resets_total = _meter.create_counter(
    name="quota_resets_total",
    description="Total number of detected quota resets",
    unit="1",
)

tracker_errors_total = _meter.create_counter(
    name="tracker_errors_total",
    description="Total number of per-quota tracker update failures",
    unit="1",
)
