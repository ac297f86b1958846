"""Deployment sinks that materialize reconcile outcomes."""

import json
from typing import Protocol

from provisioning_controller.exceptions import SinkError
from provisioning_controller.logging_config import get_logger
from provisioning_controller.models.outcome import ReconcileOutcome

logger = get_logger(__name__)

OUTCOME_KEY = "outcome.json"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "provisioning-controller"


class DeploymentSink(Protocol):
    """Receives outcomes; applying the same outcome twice must be a no-op."""

    def apply(self, outcome: ReconcileOutcome) -> None: ...


class RecordingSink:
    """Keeps applied outcomes in memory."""

    def __init__(self):
        self.applied: list[ReconcileOutcome] = []

    @property
    def last(self) -> ReconcileOutcome | None:
        return self.applied[-1] if self.applied else None

    def apply(self, outcome: ReconcileOutcome) -> None:
        if outcome == self.last:
            logger.debug("Outcome unchanged, nothing to apply")
            return
        self.applied.append(outcome)


class ConfigMapSink:
    """Publish the configuration snapshot in a ConfigMap for the workloads to consume."""

    def __init__(self, core_api, namespace: str, name: str):
        """Initialize the sink.

        Args:
            core_api: A ``kubernetes.client.CoreV1Api``
            namespace: Namespace the provisioning workloads run in
            name: Name of the ConfigMap holding the snapshot
        """
        self.core_api = core_api
        self.namespace = namespace
        self.name = name

    def render(self, outcome: ReconcileOutcome) -> dict[str, str]:
        """Render the ConfigMap data for an outcome."""
        return {OUTCOME_KEY: json.dumps(outcome.to_snapshot(), sort_keys=True, indent=2)}

    def apply(self, outcome: ReconcileOutcome) -> None:
        """
        Create or update the ConfigMap, skipping the write when data is unchanged.

        Raises:
            SinkError: If the ConfigMap cannot be read or written.
        """
        from kubernetes import client
        from kubernetes.client.rest import ApiException
        from urllib3.exceptions import HTTPError

        data = self.render(outcome)
        try:
            try:
                current = self.core_api.read_namespaced_config_map(self.name, self.namespace)
            except ApiException as e:
                if e.status != 404:
                    raise
                current = None

            if current is None:
                body = client.V1ConfigMap(
                    metadata=client.V1ObjectMeta(
                        name=self.name,
                        namespace=self.namespace,
                        labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
                    ),
                    data=data,
                )
                self.core_api.create_namespaced_config_map(self.namespace, body)
                logger.info(f"Created ConfigMap {self.namespace}/{self.name}")
                return

            if (current.data or {}) == data:
                logger.debug(f"ConfigMap {self.namespace}/{self.name} is up to date")
                return

            current.data = data
            self.core_api.replace_namespaced_config_map(self.name, self.namespace, current)
            logger.info(f"Updated ConfigMap {self.namespace}/{self.name}")

        except ApiException as e:
            raise SinkError(
                f"Failed to write ConfigMap {self.namespace}/{self.name}: {e.status} {e.reason}",
                "Check the controller's RBAC for configmaps in its namespace",
            )
        except (HTTPError, OSError) as e:
            raise SinkError(f"Failed to write ConfigMap {self.namespace}/{self.name}: {e}")
