"""Reconcile the provisioning subsystem toward the state its inputs describe.

One pass reads the current state from the store and never trusts the event
that triggered it:

1. Decide whether the platform is bare metal. An error or a disabled
   platform ends the pass before anything else is read.
2. Read the Provisioning singleton. If it does not exist there is nothing to
   do, and nothing is created or removed.
3. Derive the internal API host and the network stack it is served on.
4. Hand the outcome to the deployment sink and record conditions on the
   Provisioning status.

Every retryable failure ends the pass with an outcome that carries the
error kind and a requeue delay; the work queue applies backoff on top.
"""

import threading
import time
from dataclasses import dataclass, field

from provisioning_controller.addresses import AddressSource
from provisioning_controller.config import ControllerSettings
from provisioning_controller.endpoint import api_server_internal_host
from provisioning_controller.exceptions import (
    AddressDiscoveryError,
    ConflictError,
    ProvisioningControllerError,
    ReconcileCancelledError,
)
from provisioning_controller.logging_config import get_logger
from provisioning_controller.models.outcome import (
    Condition,
    ConditionType,
    ReconcileOutcome,
)
from provisioning_controller.models.provisioning import (
    PROVISIONING_SINGLETON_NAME,
    ProvisioningConfig,
)
from provisioning_controller.network import network_stack
from provisioning_controller.platform import is_enabled
from provisioning_controller.provisioning import read_provisioning_cr
from provisioning_controller.sink import DeploymentSink
from provisioning_controller.store import ObjectStore, ResourceKind

logger = get_logger(__name__)


@dataclass
class ControllerContext:
    """Handles every component of a pass works through."""

    store: ObjectStore
    sink: DeploymentSink
    address_source: AddressSource
    settings: ControllerSettings = field(default_factory=ControllerSettings)


@dataclass
class ReconcileContext:
    """Cancellation signal and deadline for one pass."""

    cancel: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None  # time.monotonic() based

    @classmethod
    def with_timeout(
        cls, seconds: float, cancel: threading.Event | None = None
    ) -> "ReconcileContext":
        return cls(cancel=cancel or threading.Event(), deadline=time.monotonic() + seconds)

    def check(self, step: str) -> None:
        """Raise ReconcileCancelledError if the pass must stop before ``step``."""
        if self.cancel.is_set():
            raise ReconcileCancelledError(f"Reconcile cancelled before {step}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ReconcileCancelledError(f"Reconcile deadline exceeded before {step}")


class ProvisioningReconciler:
    """Runs reconcile passes for the Provisioning singleton."""

    def __init__(self, context: ControllerContext):
        self.context = context
        self.conditions: dict[ConditionType, Condition] = {}

    @property
    def settings(self) -> ControllerSettings:
        return self.context.settings

    def reconcile(self, ctx: ReconcileContext | None = None) -> ReconcileOutcome:
        """
        Run one reconcile pass.

        Returns:
            The outcome of the pass. Failures are reported in the outcome,
            not raised.

        Raises:
            ReconcileCancelledError: If the pass was cancelled before converging.
        """
        ctx = ctx or ReconcileContext()
        store = self.context.store

        ctx.check("determining platform")
        try:
            enabled = is_enabled(store)
        except ProvisioningControllerError as e:
            return self._failed(e, enabled=False)

        if not enabled:
            logger.info("Platform is not bare metal, provisioning is disabled")
            self._record(
                Condition(type=ConditionType.DISABLED, status=True, reason="UnsupportedPlatform"),
                Condition(type=ConditionType.AVAILABLE, status=False, reason="UnsupportedPlatform"),
                Condition(type=ConditionType.DEGRADED, status=False, reason="UnsupportedPlatform"),
            )
            return ReconcileOutcome(enabled=False)

        ctx.check("reading configuration")
        try:
            config = read_provisioning_cr(store)
        except ProvisioningControllerError as e:
            return self._failed(e, enabled=True)

        if config is None:
            logger.info(
                f"Provisioning {PROVISIONING_SINGLETON_NAME!r} not found, nothing to reconcile"
            )
            self._record(
                Condition(type=ConditionType.DISABLED, status=False, reason="NotConfigured"),
                Condition(
                    type=ConditionType.AVAILABLE,
                    status=False,
                    reason="NotConfigured",
                    message=f"Waiting for Provisioning {PROVISIONING_SINGLETON_NAME!r}",
                ),
                Condition(type=ConditionType.DEGRADED, status=False, reason="NotConfigured"),
            )
            return ReconcileOutcome(enabled=True)

        ctx.check("resolving the internal API host")
        try:
            host = api_server_internal_host(store)
        except ProvisioningControllerError as e:
            return self._failed(e, enabled=True, config=config)

        ctx.check("discovering addresses")
        try:
            addresses = self.context.address_source.addresses(host)
            stack = network_stack(addresses)
        except ValueError as e:
            return self._failed(
                AddressDiscoveryError(f"Invalid address reported for {host}", str(e)),
                enabled=True,
                config=config,
            )
        except ProvisioningControllerError as e:
            return self._failed(e, enabled=True, config=config)

        outcome = ReconcileOutcome(
            enabled=True, config=config, network_stack=stack, internal_host=host
        )

        ctx.check("converging")
        try:
            self.context.sink.apply(outcome)
        except ProvisioningControllerError as e:
            return self._failed(e, enabled=True, config=config)

        try:
            self._record(
                Condition(type=ConditionType.DISABLED, status=False, reason="AsExpected"),
                Condition(
                    type=ConditionType.AVAILABLE,
                    status=True,
                    reason="AsExpected",
                    message=f"Provisioning configured for {stack.value} stack via {host}",
                ),
                Condition(type=ConditionType.DEGRADED, status=False, reason="AsExpected"),
                publish=True,
            )
        except ProvisioningControllerError as e:
            return self._failed(e, enabled=True, config=config)

        logger.info(f"Reconciled provisioning: stack={stack.value} host={host}")
        return outcome

    def _failed(
        self,
        error: ProvisioningControllerError,
        enabled: bool,
        config: ProvisioningConfig | None = None,
    ) -> ReconcileOutcome:
        logger.error(f"Reconcile failed ({error.kind.value}): {error.message}")
        if error.details:
            logger.debug(error.details)

        conditions = (
            Condition(
                type=ConditionType.DEGRADED,
                status=True,
                reason=error.kind.value,
                message=error.message,
            ),
            Condition(type=ConditionType.AVAILABLE, status=False, reason=error.kind.value),
        )
        try:
            # Status is only published once the platform and the singleton are known
            self._record(*conditions, publish=config is not None)
        except ProvisioningControllerError as e:
            logger.error(f"Failed to record Degraded condition: {e.message}")

        return ReconcileOutcome(
            enabled=enabled,
            config=config,
            error=error.kind,
            message=error.message,
            requeue_after=self.settings.retry_base_seconds,
        )

    def _record(self, *conditions: Condition, publish: bool = False) -> None:
        """Remember conditions and optionally write them to the Provisioning status."""
        for condition in conditions:
            previous = self.conditions.get(condition.type)
            if previous is None or previous.status != condition.status:
                logger.debug(
                    f"Condition {condition.type.value}={condition.status} ({condition.reason})"
                )
            else:
                condition = condition.model_copy(
                    update={"last_transition_time": previous.last_transition_time}
                )
            self.conditions[condition.type] = condition

        if publish:
            self._publish_status()

    def _publish_status(self) -> None:
        """
        Write the recorded conditions to the Provisioning status subresource.

        Conflicts are retried by re-reading the object. Nothing is written
        when the stored conditions already match.

        Raises:
            StoreAccessError: If the status cannot be written.
        """
        store = self.context.store
        attempts = self.settings.status_update_attempts
        for attempt in range(1, attempts + 1):
            obj = store.get(ResourceKind.PROVISIONING, PROVISIONING_SINGLETON_NAME)
            if obj is None:
                logger.debug("Provisioning disappeared before status could be written")
                return

            status = dict(obj.get("status") or {})
            existing = status.get("conditions") or []
            conditions = merge_conditions(existing, list(self.conditions.values()))
            if conditions == existing:
                return

            status["conditions"] = conditions
            obj["status"] = status
            try:
                store.update_status(obj)
                logger.debug("Updated Provisioning status conditions")
                return
            except ConflictError:
                if attempt == attempts:
                    raise
                logger.debug(f"Conflict writing Provisioning status, retrying ({attempt})")


def merge_conditions(existing: list[dict], conditions: list[Condition]) -> list[dict]:
    """
    Render conditions for the status, keeping the stored transition time
    of every condition whose status did not change.
    """
    by_type = {c.get("type"): c for c in existing if isinstance(c, dict)}
    merged = []
    for condition in sorted(conditions, key=lambda c: c.type.value):
        rendered = condition.to_status_dict()
        stored = by_type.get(rendered["type"])
        if stored and stored.get("status") == rendered["status"]:
            rendered["lastTransitionTime"] = stored.get(
                "lastTransitionTime", rendered["lastTransitionTime"]
            )
        merged.append(rendered)
    return merged
