import json

from procure_flow.cloudwatch.metrics import PERMISSIONS_NAMESPACE, MetricsManager


def test_put_metric_accumulates():
    manager = MetricsManager()
    manager.put_metric("PermissionRequested")
    manager.put_metric("PermissionRequested")
    manager.put_metric("BulkRespondFailed", 3)

    assert manager.get_metric("PermissionRequested") == 2
    assert manager.get_metric("BulkRespondFailed") == 3
    assert manager.get_metric("Unknown") == 0


def test_flush_emits_and_resets(capsys):
    manager = MetricsManager()
    manager.set_dimension("Stage", "test")
    manager.put_metric("PermissionApproved", 2)

    manager.flush()

    emitted = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
    assert emitted
    record = emitted[-1]
    assert record["PermissionApproved"] == 2
    assert record["Stage"] == "test"
    assert record["_aws"]["CloudWatchMetrics"][0]["Namespace"] == PERMISSIONS_NAMESPACE
    assert manager.get_metric("PermissionApproved") == 0
