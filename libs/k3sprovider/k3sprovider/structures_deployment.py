"""
Deployment spec mapping between attribute trees and Kubernetes models.

Converts the ``spec`` block of a ``kubernetes_deployment`` resource
(replicas, selector, strategy, rolling update parameters and pod template)
into V1DeploymentSpec and back.
"""

from typing import Any, Dict, List, Optional

from kubernetes import client

from .structures import (
    expand_int_or_string,
    expand_string_map,
    first_block,
    flatten_int_or_string,
    flatten_metadata,
)
from .structures_pod import expand_pod_spec, flatten_pod_spec

# Optional spec fields that are only sent when configured
_OPTIONAL_SPEC_FIELDS = (
    "paused",
    "progress_deadline_seconds",
    "revision_history_limit",
)


def flatten_deployment_spec(in_: client.V1DeploymentSpec) -> List[Dict[str, Any]]:
    """
    Flatten V1DeploymentSpec into a ``spec`` block.

    Raises:
        ValueError: Propagated from the pod spec flattener
    """
    att: Dict[str, Any] = {
        "min_ready_seconds": in_.min_ready_seconds or 0,
    }
    if in_.replicas is not None:
        att["replicas"] = in_.replicas

    selector = in_.selector
    att["selector"] = dict(selector.match_labels or {}) if selector else {}
    att["strategy"] = flatten_deployment_strategy(in_.strategy)

    template = in_.template or client.V1PodTemplateSpec()
    pod_spec = flatten_pod_spec(template.spec)
    att["template"] = [
        {
            "metadata": flatten_metadata(template.metadata),
            "spec": pod_spec,
        },
    ]

    for key in _OPTIONAL_SPEC_FIELDS:
        value = getattr(in_, key)
        if value is not None:
            att[key] = value

    return [att]


def flatten_deployment_strategy(
    in_: Optional[client.V1DeploymentStrategy],
) -> List[Dict[str, Any]]:
    """Flatten V1DeploymentStrategy into a ``strategy`` block."""
    att: Dict[str, Any] = {}
    if in_ is None:
        return [att]
    if in_.type:
        att["type"] = in_.type
    if in_.rolling_update is not None:
        att["rolling_update"] = flatten_deployment_strategy_rolling_update(
            in_.rolling_update
        )
    return [att]


def flatten_deployment_strategy_rolling_update(
    in_: client.V1RollingUpdateDeployment,
) -> List[Dict[str, Any]]:
    """Flatten rolling update parameters, rendering both as strings."""
    att: Dict[str, Any] = {}
    if in_.max_surge is not None:
        att["max_surge"] = flatten_int_or_string(in_.max_surge)
    if in_.max_unavailable is not None:
        att["max_unavailable"] = flatten_int_or_string(in_.max_unavailable)
    return [att]


def expand_deployment_template_pod_spec(template: Any) -> client.V1PodSpec:
    """Expand the pod spec held in a ``template`` block."""
    in_ = first_block(template)
    if in_ is None:
        return client.V1PodSpec(containers=[])
    return expand_pod_spec(in_.get("spec"))


def expand_deployment_spec(deployment: Any) -> client.V1DeploymentSpec:
    """
    Expand a ``spec`` block into V1DeploymentSpec.

    The pod template is always labelled with exactly the selector labels,
    so the deployment always selects its own pods.

    Raises:
        ValueError: Propagated from the pod spec expander
    """
    in_ = first_block(deployment)
    if in_ is None:
        return client.V1DeploymentSpec(
            selector=client.V1LabelSelector(),
            template=client.V1PodTemplateSpec(),
        )

    selector = client.V1LabelSelector(
        match_labels=expand_string_map(in_.get("selector")),
    )
    pod_spec = expand_deployment_template_pod_spec(in_.get("template"))

    obj = client.V1DeploymentSpec(
        min_ready_seconds=int(in_.get("min_ready_seconds") or 0),
        replicas=int(in_["replicas"]) if in_.get("replicas") is not None else None,
        selector=selector,
        strategy=expand_deployment_strategy(in_.get("strategy")),
        template=client.V1PodTemplateSpec(
            metadata=client.V1ObjectMeta(labels=selector.match_labels),
            spec=pod_spec,
        ),
    )

    for key in _OPTIONAL_SPEC_FIELDS:
        if in_.get(key) is not None:
            setattr(obj, key, in_[key])

    return obj


def expand_deployment_strategy(p: Any) -> client.V1DeploymentStrategy:
    """Expand a ``strategy`` block."""
    obj = client.V1DeploymentStrategy()
    in_ = first_block(p)
    if in_ is None:
        return obj

    if "type" in in_:
        obj.type = in_["type"]
    if "rolling_update" in in_:
        obj.rolling_update = expand_rolling_update_deployment(in_["rolling_update"])
    return obj


def expand_rolling_update_deployment(p: Any) -> client.V1RollingUpdateDeployment:
    """
    Expand a ``rolling_update`` block.

    Always returns an object, empty when the block is empty.
    """
    obj = client.V1RollingUpdateDeployment()
    in_ = first_block(p)
    if in_ is None:
        return obj

    if "max_surge" in in_:
        obj.max_surge = expand_int_or_string(in_["max_surge"])
    if "max_unavailable" in in_:
        obj.max_unavailable = expand_int_or_string(in_["max_unavailable"])
    return obj
