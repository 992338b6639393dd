"""Tests for the metrics client."""

from unittest.mock import patch

from sre_workflow.common.metrics import REGISTRY, MetricsClient


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsClient:
    def test_record_rollback(self):
        before = sample("sre_rollbacks_total", service="svc-metrics", status="failed")

        MetricsClient().record_rollback("svc-metrics", succeeded=False)

        assert sample("sre_rollbacks_total", service="svc-metrics", status="failed") == before + 1

    def test_disabled_records_nothing(self):
        before = sample("sre_deploy_outcomes_total", service="svc-off", outcome="succeeded")

        MetricsClient(enabled=False).record_deploy("svc-off", "succeeded", 1.0)

        assert sample("sre_deploy_outcomes_total", service="svc-off", outcome="succeeded") == before

    def test_push_without_gateway(self):
        with patch("sre_workflow.common.metrics.push_to_gateway") as push:
            assert not MetricsClient().push()

        push.assert_not_called()

    def test_push_to_gateway(self):
        with patch("sre_workflow.common.metrics.push_to_gateway") as push:
            assert MetricsClient(pushgateway_url="pushgateway:9091").push(job="deploy")

        push.assert_called_once_with("pushgateway:9091", job="deploy", registry=REGISTRY)

    def test_start_server_once(self):
        client = MetricsClient(port=9292)

        with patch("sre_workflow.common.metrics.start_http_server") as start:
            client.start_server()
            client.start_server()

        start.assert_called_once_with(9292, registry=REGISTRY)
