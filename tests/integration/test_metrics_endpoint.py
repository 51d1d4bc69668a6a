"""Integration tests for metrics endpoint."""

from __future__ import annotations

from tests.helpers import png_bytes
from tests.integration.utils import auth_headers, use_fake_ocr


def test_metrics_endpoint_available(client):
    client.get("/balance", headers=auth_headers())

    response = client.get("/metrics")
    assert response.status_code == 200
    body = response.content.decode()
    assert "sipcoin_http_requests_total" in body
    assert "sipcoin_submissions_total" in body


def test_ocr_jobs_are_counted(client, app):
    use_fake_ocr(app)
    created = client.post(
        "/receipts",
        files={"file": ("receipt.png", png_bytes(), "image/png")},
        headers=auth_headers(),
    ).json()
    client.post(f"/receipts/{created['id']}/process", headers=auth_headers())

    body = client.get("/metrics").content.decode()
    assert 'sipcoin_ocr_jobs_total{status="processed"}' in body
