"""Prometheus metrics definitions for SipCoin."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "sipcoin_http_requests_total",
    "Total number of HTTP requests processed by the SipCoin API",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "sipcoin_http_request_duration_seconds",
    "Latency of HTTP requests processed by the SipCoin API",
    ["method", "path"],
)

OCR_JOBS = Counter(
    "sipcoin_ocr_jobs_total",
    "Number of receipt OCR jobs executed by status",
    ["status"],
)

SUBMISSIONS = Counter(
    "sipcoin_submissions_total",
    "Receipt submissions by outcome (accepted or rejection reason)",
    ["result"],
)

POINTS_AWARDED = Counter(
    "sipcoin_points_awarded_total",
    "SipCoins awarded for accepted receipt submissions",
)

BALANCE_CREDIT_FAILURES = Counter(
    "sipcoin_balance_credit_failures_total",
    "Submissions whose award was persisted but whose balance credit failed",
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "OCR_JOBS",
    "SUBMISSIONS",
    "POINTS_AWARDED",
    "BALANCE_CREDIT_FAILURES",
]
