"""
The ``kubernetes_deployment`` resource.

Drives the apps/v1 Deployment API: create, read, in-place update, delete
and import. State documents have the shape::

    {"id": "<namespace>/<name>", "metadata": [...], "spec": [...]}
"""

import copy
import logging
import time
from typing import Any, Dict, List, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from .structures import (
    build_id,
    expand_metadata,
    first_block,
    flatmap,
    flatten_metadata,
    id_parts,
    normalize_blocks,
)
from .structures_deployment import expand_deployment_spec, flatten_deployment_spec
from .types import DeploymentStrategyType, Plan, PlanAction

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DEFAULT_MAX_SURGE = "25%"
DEFAULT_MAX_UNAVAILABLE = "25%"

# Attributes set by the API server, never diffed against config
COMPUTED_ATTRIBUTES = (
    "metadata.0.generation",
    "metadata.0.resource_version",
    "metadata.0.self_link",
    "metadata.0.uid",
    "spec.0.template.0.metadata",
)

# Changing any of these requires deleting and recreating the deployment.
# The apps/v1 selector is immutable once created.
FORCE_NEW_ATTRIBUTES = (
    "metadata.0.name",
    "metadata.0.namespace",
    "metadata.0.generate_name",
    "spec.0.selector",
)

# Values the API server fills in when an attribute is omitted, by attribute
# name. A value only present in state is ignored if it is one of these.
SERVER_DEFAULTS = {
    "progress_deadline_seconds": ("600",),
    "revision_history_limit": ("10",),
    "restart_policy": ("Always",),
    "dns_policy": ("ClusterFirst",),
    "termination_grace_period_seconds": ("30",),
    "image_pull_policy": ("Always", "IfNotPresent"),
    "protocol": ("TCP",),
    "scheme": ("HTTP",),
    "timeout_seconds": ("1",),
    "period_seconds": ("10",),
    "success_threshold": ("1",),
    "failure_threshold": ("3",),
    "default_mode": ("420",),
}

# Flattened values equivalent to an unset attribute
_UNSET_VALUES = ("", "false")

# Keys of the resource config that are not part of the object
_OPTION_KEYS = ("wait_for_rollout",)


def apply_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a normalized copy of a resource config with defaults filled in.

    - metadata: namespace ``default``, empty labels/annotations
    - spec: one replica, min_ready_seconds 0, RollingUpdate 25%/25%
    - an empty selector selects on the deployment's own labels
    """
    config = normalize_blocks(copy.deepcopy(config))
    for key in _OPTION_KEYS:
        config.pop(key, None)

    metadata = first_block(config.get("metadata")) or {}
    if not metadata.get("namespace"):
        metadata["namespace"] = DEFAULT_NAMESPACE
    metadata.setdefault("labels", {})
    metadata.setdefault("annotations", {})
    config["metadata"] = [metadata]

    spec = first_block(config.get("spec")) or {}
    spec.setdefault("replicas", 1)
    spec.setdefault("min_ready_seconds", 0)
    if not spec.get("selector"):
        spec["selector"] = dict(metadata["labels"])

    strategy = first_block(spec.get("strategy")) or {}
    strategy.setdefault("type", DeploymentStrategyType.ROLLING_UPDATE.value)
    if strategy["type"] == DeploymentStrategyType.ROLLING_UPDATE.value:
        rolling_update = first_block(strategy.get("rolling_update")) or {}
        rolling_update.setdefault("max_surge", DEFAULT_MAX_SURGE)
        rolling_update.setdefault("max_unavailable", DEFAULT_MAX_UNAVAILABLE)
        strategy["rolling_update"] = [rolling_update]
    spec["strategy"] = [strategy]
    config["spec"] = [spec]

    return config


def build_deployment(config: Dict[str, Any]) -> client.V1Deployment:
    """
    Expand a resource config into the V1Deployment sent to the API.

    Raises:
        ValueError: If the config cannot be expanded
    """
    config = apply_defaults(config)
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=expand_metadata(config["metadata"]),
        spec=expand_deployment_spec(config["spec"]),
    )


def _under(key: str, prefixes) -> bool:
    return any(key == p or key.startswith(p + ".") for p in prefixes)


def _is_computed(key: str) -> bool:
    return _under(key, COMPUTED_ATTRIBUTES)


def _is_server_default(key: str, value: str) -> bool:
    return value in SERVER_DEFAULTS.get(key.rsplit(".", 1)[-1], ())


def diff_attributes(config: Dict[str, Any], state: Dict[str, Any]) -> List[str]:
    """
    List attribute paths whose configured value differs from state.

    Config is expected to be the output of :func:`apply_defaults`.

    - a configured ``""`` or ``false`` matches a missing state value
    - a value only present in state is a change (the attribute was removed
      from config), unless it is empty, ``false`` or a server default
    - list and map sizes only present in state count for blocks the config
      also sets
    """
    desired = {k: v for k, v in flatmap(config).items() if not _is_computed(k)}
    current = {
        k: v for k, v in flatmap({k: v for k, v in state.items() if k != "id"}).items()
        if not _is_computed(k)
    }

    changes = set()
    for key, value in desired.items():
        if key not in current:
            if value not in _UNSET_VALUES:
                changes.add(key)
        elif current[key] != value:
            changes.add(key)

    for key, value in current.items():
        if key in desired or value in _UNSET_VALUES:
            continue
        if key.endswith((".#", ".%")):
            if value == "0":
                continue
            owner = key[:-2].rsplit(".", 1)[0]
            if any(k.startswith(owner + ".") for k in desired):
                changes.add(key)
        elif not _is_server_default(key, value):
            changes.add(key)

    return sorted(changes)


class DeploymentResource:
    """
    Manages one kind of object: apps/v1 Deployment.

    Args:
        apps_v1: AppsV1Api bound to a configured ApiClient
        poll_interval: Seconds between status polls
        timeout: Seconds to wait for rollouts and deletions
    """

    type_name = "kubernetes_deployment"

    def __init__(
        self,
        apps_v1: client.AppsV1Api,
        poll_interval: float = 2.0,
        timeout: float = 600.0,
    ):
        self.apps_v1 = apps_v1
        self.poll_interval = poll_interval
        self.timeout = timeout

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Create the deployment described by ``config`` and return its state."""
        wait = bool(config.get("wait_for_rollout", False))
        body = build_deployment(config)
        metadata = body.metadata

        logger.info(
            f"Creating new deployment: "
            f"{metadata.namespace}/{metadata.name or metadata.generate_name}"
        )
        out = self.apps_v1.create_namespaced_deployment(
            namespace=metadata.namespace,
            body=body,
        )
        resource_id = build_id(out.metadata)
        logger.info(f"Submitted new deployment: {resource_id}")

        if wait:
            self.wait_for_rollout(resource_id)
            state = self.read(resource_id)
            if state is not None:
                return state
        return self._to_state(out)

    def read(self, resource_id: str) -> Optional[Dict[str, Any]]:
        """
        Read the deployment's current state.

        Returns None if the deployment no longer exists.
        """
        deployment = self._get(resource_id)
        if deployment is None:
            logger.info(f"Deployment {resource_id} not found")
            return None
        logger.debug(f"Received deployment: {resource_id}")
        return self._to_state(deployment)

    def update(self, resource_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update the deployment in place.

        Labels, annotations and spec are replaced on the live object, which
        keeps its UID.

        Raises:
            ValueError: If the deployment does not exist
        """
        wait = bool(config.get("wait_for_rollout", False))
        config = apply_defaults(config)
        namespace, name = id_parts(resource_id)

        live = self._get(resource_id)
        if live is None:
            raise ValueError(f"Deployment {resource_id} does not exist")

        desired = expand_metadata(config["metadata"])
        live.metadata.labels = _merge_internal(live.metadata.labels, desired.labels)
        live.metadata.annotations = _merge_internal(
            live.metadata.annotations, desired.annotations
        )
        live.spec = expand_deployment_spec(config["spec"])
        live.status = None

        logger.info(f"Updating deployment {resource_id}")
        out = self.apps_v1.replace_namespaced_deployment(
            name=name,
            namespace=namespace,
            body=live,
        )
        logger.info(f"Submitted updated deployment: {resource_id}")

        if wait:
            self.wait_for_rollout(resource_id)
            state = self.read(resource_id)
            if state is not None:
                return state
        return self._to_state(out)

    def delete(self, resource_id: str, wait: bool = True) -> None:
        """Delete the deployment and its pods. Missing deployments are ignored."""
        namespace, name = id_parts(resource_id)
        logger.info(f"Deleting deployment: {resource_id}")
        try:
            self.apps_v1.delete_namespaced_deployment(
                name=name,
                namespace=namespace,
                body=client.V1DeleteOptions(propagation_policy="Foreground"),
            )
        except ApiException as e:
            if e.status == 404:
                logger.info(f"Deployment {resource_id} already deleted")
                return
            raise

        if wait:
            self._wait(
                lambda: self._get(resource_id) is None,
                f"deletion of deployment {resource_id}",
            )
        logger.info(f"Deployment {resource_id} deleted")

    def exists(self, resource_id: str) -> bool:
        return self._get(resource_id) is not None

    def import_state(self, resource_id: str) -> Dict[str, Any]:
        """
        Import an existing deployment by ``namespace/name``.

        Raises:
            ValueError: If the id is malformed or the deployment does not exist
        """
        state = self.read(resource_id)
        if state is None:
            raise ValueError(f"Cannot import non-existent deployment {resource_id}")
        return state

    # =========================================================================
    # Planning
    # =========================================================================

    def plan(
        self,
        config: Optional[Dict[str, Any]],
        state: Optional[Dict[str, Any]],
    ) -> Plan:
        """Work out what apply would do to move ``state`` to ``config``."""
        if config is None:
            if state is None:
                return Plan(action=PlanAction.NOOP)
            return Plan(action=PlanAction.DELETE, resource_id=state.get("id"))
        if state is None:
            return Plan(action=PlanAction.CREATE)

        changes = diff_attributes(apply_defaults(config), state)
        if not changes:
            return Plan(action=PlanAction.NOOP, resource_id=state.get("id"))
        if any(_under(c, FORCE_NEW_ATTRIBUTES) for c in changes):
            return Plan(action=PlanAction.REPLACE, resource_id=state.get("id"), changes=changes)
        return Plan(action=PlanAction.UPDATE, resource_id=state.get("id"), changes=changes)

    def apply(self, plan: Plan, config: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Carry out a plan. Returns the new state, or None after a delete."""
        if plan.action == PlanAction.CREATE:
            return self.create(config)
        if plan.action == PlanAction.UPDATE:
            return self.update(plan.resource_id, config)
        if plan.action == PlanAction.REPLACE:
            self.delete(plan.resource_id)
            return self.create(config)
        if plan.action == PlanAction.DELETE:
            self.delete(plan.resource_id)
            return None
        return self.read(plan.resource_id) if plan.resource_id else None

    # =========================================================================
    # Rollout
    # =========================================================================

    def wait_for_rollout(self, resource_id: str) -> None:
        """
        Block until the deployment's pods are all updated and available.

        Raises:
            TimeoutError: If the rollout does not finish within ``timeout``
        """
        logger.info(f"Waiting for rollout of deployment {resource_id}")
        self._wait(
            lambda: _rollout_complete(self._get(resource_id)),
            f"rollout of deployment {resource_id}",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get(self, resource_id: str) -> Optional[client.V1Deployment]:
        namespace, name = id_parts(resource_id)
        try:
            return self.apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def _wait(self, done, what: str) -> None:
        deadline = time.monotonic() + self.timeout
        while not done():
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out after {self.timeout}s waiting for {what}")
            time.sleep(self.poll_interval)

    @staticmethod
    def _to_state(deployment: client.V1Deployment) -> Dict[str, Any]:
        return {
            "id": build_id(deployment.metadata),
            "metadata": flatten_metadata(deployment.metadata),
            "spec": flatten_deployment_spec(deployment.spec),
        }


def _merge_internal(
    live: Optional[Dict[str, str]],
    desired: Optional[Dict[str, str]],
) -> Dict[str, str]:
    """Keep ``*kubernetes.io/*`` keys from the live object, replace the rest."""
    merged = {k: v for k, v in (live or {}).items() if "kubernetes.io/" in k}
    merged.update(desired or {})
    return merged


def _rollout_complete(deployment: Optional[client.V1Deployment]) -> bool:
    if deployment is None:
        raise ValueError("Deployment disappeared while waiting for rollout")

    status = deployment.status
    if status is None:
        return False
    if (status.observed_generation or 0) < (deployment.metadata.generation or 0):
        return False

    replicas = deployment.spec.replicas if deployment.spec.replicas is not None else 1
    return (
        (status.updated_replicas or 0) >= replicas
        and (status.available_replicas or 0) >= replicas
        and (status.replicas or 0) <= replicas
    )
