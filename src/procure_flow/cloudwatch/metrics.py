import logging

from aws_embedded_metrics import metric_scope

_LOGGER = logging.getLogger(__name__)

PERMISSIONS_NAMESPACE = "ProcureFlow/Permissions"


class MetricsManager:
    """
    Collects counters during one Lambda invocation and emits them as
    CloudWatch embedded metrics on flush. Repeated puts of the same name add up.
    """

    def __init__(self, namespace: str = PERMISSIONS_NAMESPACE):
        self._namespace = namespace
        self._counters: dict[str, int] = {}
        self._dimensions: dict[str, str] = {}

    def set_dimension(self, name: str, value: str) -> None:
        self._dimensions[name] = value

    def put_metric(self, name: str, value: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + value
        _LOGGER.debug(f"Metric '{name}' now {self._counters[name]} in namespace '{self._namespace}'")

    def get_metric(self, name: str) -> int:
        return self._counters.get(name, 0)

    @metric_scope
    def flush(self, metrics):
        """Emits all queued counters to CloudWatch Logs and resets them."""
        metrics.set_namespace(self._namespace)
        if self._dimensions:
            metrics.put_dimensions(dict(self._dimensions))
        for name, value in self._counters.items():
            metrics.put_metric(name, value, "Count")

        _LOGGER.info(f"Flushed {len(self._counters)} metrics to namespace '{self._namespace}'.")
        self._counters = {}
