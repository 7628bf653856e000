"""
Unit tests for MetricsServer HTTP endpoints.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application
without binding the configured port.
"""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from argocd_operator.observability.metrics import MetricsServer, metrics_collector


def make_client() -> TestClient:
    """Create an aiohttp TestClient from a fresh MetricsServer app."""
    return TestClient(TestServer(MetricsServer(port=0).app))


class TestMetricsEndpoint:
    """Tests for ``GET /metrics``."""

    @pytest.mark.asyncio
    async def test_metrics_exposes_operator_metrics(self):
        """Prometheus scrape endpoint returns the operator's metrics."""
        metrics_collector.record_tls_drift("repo-server", "metrics-test")

        async with make_client() as client:
            resp = await client.get("/metrics")
            body = await resp.text()

        assert resp.status == 200
        assert "argocd_operator_tls_drift_detected_total" in body
        assert 'namespace="metrics-test"' in body

    @pytest.mark.asyncio
    async def test_metrics_error_returns_500(self):
        """When generate_latest raises, the handler returns 500."""
        with patch(
            "argocd_operator.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            async with make_client() as client:
                resp = await client.get("/metrics")
                body = await resp.text()

        assert resp.status == 500
        assert "RuntimeError" in body


class TestHealthzEndpoint:
    """Tests for ``GET /healthz`` (K8s liveness probe)."""

    @pytest.mark.asyncio
    async def test_healthz_returns_200_ok(self):
        """/healthz should always return 200 'ok'."""
        async with make_client() as client:
            resp = await client.get("/healthz")
            body = await resp.text()

        assert resp.status == 200
        assert body == "ok"
