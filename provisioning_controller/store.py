"""Resource store access for the two resource kinds the controller consumes.

The controller only ever talks to a small, closed set of cluster-scoped custom
resources, so the store is addressed by ``(kind, name)`` and returns plain
dictionaries in the shape the Kubernetes API serves them.  Two
implementations are provided:

* ``KubernetesStore`` talks to a live API server through the ``kubernetes``
  client.
* ``InMemoryStore`` keeps objects in a dictionary with the same optimistic
  concurrency rules, and is what the tests use.
"""

import copy
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from provisioning_controller.exceptions import ConflictError, StoreAccessError
from provisioning_controller.logging_config import get_logger
from provisioning_controller.models.infrastructure import (
    INFRASTRUCTURE_GROUP,
    INFRASTRUCTURE_PLURAL,
    INFRASTRUCTURE_VERSION,
)
from provisioning_controller.models.provisioning import (
    PROVISIONING_GROUP,
    PROVISIONING_PLURAL,
    PROVISIONING_VERSION,
)

logger = get_logger(__name__)


class ResourceKind(str, Enum):
    """Resource kinds known to the controller."""

    INFRASTRUCTURE = "Infrastructure"
    PROVISIONING = "Provisioning"

    @property
    def group(self) -> str:
        return INFRASTRUCTURE_GROUP if self is ResourceKind.INFRASTRUCTURE else PROVISIONING_GROUP

    @property
    def version(self) -> str:
        if self is ResourceKind.INFRASTRUCTURE:
            return INFRASTRUCTURE_VERSION
        return PROVISIONING_VERSION

    @property
    def plural(self) -> str:
        if self is ResourceKind.INFRASTRUCTURE:
            return INFRASTRUCTURE_PLURAL
        return PROVISIONING_PLURAL

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


@dataclass
class WatchEvent:
    """A single change notification from the store."""

    type: str  # ADDED, MODIFIED, DELETED
    kind: ResourceKind
    name: str
    object: dict = field(default_factory=dict)


class ObjectStore(Protocol):
    """Capabilities the controller needs from a resource store."""

    def get(self, kind: ResourceKind, name: str) -> dict | None: ...

    def list(self, kind: ResourceKind) -> list[dict]: ...

    def update(self, obj: dict) -> dict: ...

    def update_status(self, obj: dict) -> dict: ...

    def watch(self, kind: ResourceKind, stop_event: threading.Event) -> Iterator[WatchEvent]: ...


def object_name(obj: dict) -> str:
    """Return metadata.name of a resource, or an empty string."""
    metadata = (obj or {}).get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return metadata.get("name") or ""


def object_kind(obj: dict) -> ResourceKind:
    """Return the ResourceKind of a resource.

    Raises:
        StoreAccessError: If the kind is missing or unknown
    """
    try:
        return ResourceKind(obj.get("kind"))
    except ValueError:
        raise StoreAccessError(
            f"Unsupported resource kind: {obj.get('kind')!r}",
            f"Known kinds: {', '.join(k.value for k in ResourceKind)}",
        )


class InMemoryStore:
    """Dictionary backed store with resourceVersion conflict detection."""

    def __init__(self):
        self._lock = threading.RLock()
        self._objects: dict[tuple[ResourceKind, str], dict] = {}
        self._resource_version = 0
        self._watchers: list[tuple[ResourceKind, queue.Queue]] = []
        self._failures: dict[ResourceKind, Exception] = {}
        self.update_count = 0

    def _next_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    def _notify(self, event_type: str, kind: ResourceKind, obj: dict) -> None:
        for watched_kind, events in self._watchers:
            if watched_kind == kind:
                events.put(WatchEvent(event_type, kind, object_name(obj), copy.deepcopy(obj)))

    def _check_failure(self, kind: ResourceKind) -> None:
        error = self._failures.get(kind)
        if error is not None:
            raise error

    def fail(self, kind: ResourceKind, error: Exception | None) -> None:
        """Make every read of ``kind`` raise ``error`` until cleared with None."""
        with self._lock:
            if error is None:
                self._failures.pop(kind, None)
            else:
                self._failures[kind] = error

    def put(self, obj: dict) -> dict:
        """Create or replace an object unconditionally."""
        kind = object_kind(obj)
        with self._lock:
            stored = copy.deepcopy(obj)
            stored.setdefault("apiVersion", kind.api_version)
            stored.setdefault("metadata", {})["resourceVersion"] = self._next_version()
            key = (kind, object_name(stored))
            event_type = "MODIFIED" if key in self._objects else "ADDED"
            self._objects[key] = stored
            self._notify(event_type, kind, stored)
            return copy.deepcopy(stored)

    def delete(self, kind: ResourceKind, name: str) -> None:
        """Remove an object if present."""
        with self._lock:
            obj = self._objects.pop((kind, name), None)
            if obj is not None:
                self._notify("DELETED", kind, obj)

    def get(self, kind: ResourceKind, name: str) -> dict | None:
        with self._lock:
            self._check_failure(kind)
            obj = self._objects.get((kind, name))
            return copy.deepcopy(obj) if obj is not None else None

    def list(self, kind: ResourceKind) -> list[dict]:
        with self._lock:
            self._check_failure(kind)
            return [copy.deepcopy(o) for (k, _), o in sorted(self._objects.items()) if k == kind]

    def _replace(self, obj: dict, status_only: bool) -> dict:
        kind = object_kind(obj)
        name = object_name(obj)
        with self._lock:
            current = self._objects.get((kind, name))
            if current is None:
                raise StoreAccessError(f"{kind.value} {name!r} not found")
            sent_version = (obj.get("metadata") or {}).get("resourceVersion")
            current_version = current["metadata"]["resourceVersion"]
            if sent_version != current_version:
                raise ConflictError(
                    f"{kind.value} {name!r} was modified",
                    f"resourceVersion {sent_version} is stale, current is {current_version}",
                )

            updated = copy.deepcopy(current)
            if status_only:
                updated["status"] = copy.deepcopy(obj.get("status"))
            else:
                status = updated.get("status")
                updated = copy.deepcopy(obj)
                if status is not None:
                    updated["status"] = status
            updated["metadata"]["resourceVersion"] = self._next_version()
            self._objects[(kind, name)] = updated
            self.update_count += 1
            self._notify("MODIFIED", kind, updated)
            return copy.deepcopy(updated)

    def update(self, obj: dict) -> dict:
        return self._replace(obj, status_only=False)

    def update_status(self, obj: dict) -> dict:
        return self._replace(obj, status_only=True)

    def watch(self, kind: ResourceKind, stop_event: threading.Event) -> Iterator[WatchEvent]:
        # Register before returning so no change made after this call is missed
        watcher = (kind, queue.Queue())
        with self._lock:
            self._watchers.append(watcher)
        return self._drain(watcher, stop_event)

    def _drain(self, watcher: tuple, stop_event: threading.Event) -> Iterator[WatchEvent]:
        _kind, events = watcher
        try:
            while not stop_event.is_set():
                try:
                    yield events.get(timeout=0.05)
                except queue.Empty:
                    continue
        finally:
            with self._lock:
                self._watchers.remove(watcher)


class KubernetesStore:
    """Store backed by the Kubernetes custom objects API."""

    def __init__(self, api=None, watch_timeout_seconds: int = 300):
        """Initialize the store.

        Args:
            api: A ``kubernetes.client.CustomObjectsApi``; built from the loaded
                kube config when omitted
            watch_timeout_seconds: Server side timeout of a single watch request
        """
        from kubernetes import client

        self.api = api or client.CustomObjectsApi()
        self.watch_timeout_seconds = watch_timeout_seconds

    @staticmethod
    def _access_error(action: str, kind: ResourceKind, name: str, error: Exception):
        from kubernetes.client.rest import ApiException

        if isinstance(error, ApiException):
            if error.status == 409:
                return ConflictError(f"Conflict trying to {action} {kind.value} {name!r}")
            if error.status in (401, 403):
                return StoreAccessError(
                    f"Permission denied trying to {action} {kind.value} {name!r}",
                    f"Check the controller's RBAC for {kind.plural}.{kind.group}: {error.reason}",
                )
            return StoreAccessError(
                f"API error trying to {action} {kind.value} {name!r}: {error.status} {error.reason}"
            )
        return StoreAccessError(f"Failed to {action} {kind.value} {name!r}: {error}")

    def get(self, kind: ResourceKind, name: str) -> dict | None:
        from kubernetes.client.rest import ApiException
        from urllib3.exceptions import HTTPError

        try:
            return self.api.get_cluster_custom_object(
                group=kind.group, version=kind.version, plural=kind.plural, name=name
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"{kind.value} {name!r} not found")
                return None
            raise self._access_error("get", kind, name, e)
        except (HTTPError, OSError) as e:
            raise self._access_error("get", kind, name, e)

    def list(self, kind: ResourceKind) -> list[dict]:
        from kubernetes.client.rest import ApiException
        from urllib3.exceptions import HTTPError

        try:
            result = self.api.list_cluster_custom_object(
                group=kind.group, version=kind.version, plural=kind.plural
            )
        except (ApiException, HTTPError, OSError) as e:
            raise self._access_error("list", kind, "*", e)
        return result.get("items", [])

    def update(self, obj: dict) -> dict:
        from kubernetes.client.rest import ApiException
        from urllib3.exceptions import HTTPError

        kind = object_kind(obj)
        name = object_name(obj)
        try:
            return self.api.replace_cluster_custom_object(
                group=kind.group, version=kind.version, plural=kind.plural, name=name, body=obj
            )
        except (ApiException, HTTPError, OSError) as e:
            raise self._access_error("update", kind, name, e)

    def update_status(self, obj: dict) -> dict:
        from kubernetes.client.rest import ApiException
        from urllib3.exceptions import HTTPError

        kind = object_kind(obj)
        name = object_name(obj)
        try:
            return self.api.replace_cluster_custom_object_status(
                group=kind.group, version=kind.version, plural=kind.plural, name=name, body=obj
            )
        except (ApiException, HTTPError, OSError) as e:
            raise self._access_error("update status of", kind, name, e)

    def watch(self, kind: ResourceKind, stop_event: threading.Event) -> Iterator[WatchEvent]:
        from kubernetes import watch
        from kubernetes.client.rest import ApiException
        from urllib3.exceptions import HTTPError

        w = watch.Watch()
        try:
            for event in w.stream(
                self.api.list_cluster_custom_object,
                group=kind.group,
                version=kind.version,
                plural=kind.plural,
                timeout_seconds=self.watch_timeout_seconds,
            ):
                if stop_event.is_set():
                    break
                obj = event.get("object") or {}
                yield WatchEvent(event.get("type", ""), kind, object_name(obj), obj)
        except (ApiException, HTTPError, OSError) as e:
            raise self._access_error("watch", kind, "*", e)
        finally:
            w.stop()
