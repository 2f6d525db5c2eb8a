"""
Pod spec mapping between attribute trees and Kubernetes models.

Used by the deployment mapper for ``spec.template.spec``.
"""

from typing import Any, Dict, List, Optional

from kubernetes import client

from .structures import (
    block_list,
    expand_int_or_string,
    expand_string_map,
    first_block,
    flatten_int_or_string,
)


# Scalar fields copied as-is: attribute name -> model attribute name
_POD_SCALARS = {
    "restart_policy": "restart_policy",
    "dns_policy": "dns_policy",
    "service_account_name": "service_account_name",
    "node_name": "node_name",
    "host_network": "host_network",
    "host_pid": "host_pid",
    "host_ipc": "host_ipc",
    "hostname": "hostname",
    "subdomain": "subdomain",
    "termination_grace_period_seconds": "termination_grace_period_seconds",
    "active_deadline_seconds": "active_deadline_seconds",
}

_CONTAINER_SCALARS = {
    "image": "image",
    "working_dir": "working_dir",
    "image_pull_policy": "image_pull_policy",
    "stdin": "stdin",
    "tty": "tty",
}

_PROBE_SCALARS = (
    "initial_delay_seconds",
    "period_seconds",
    "timeout_seconds",
    "success_threshold",
    "failure_threshold",
)


def _copy_scalars(in_: Dict[str, Any], obj: Any, fields: Dict[str, str]) -> None:
    for key, attr in fields.items():
        if in_.get(key) is not None and in_.get(key) != "":
            setattr(obj, attr, in_[key])


def _flatten_scalars(obj: Any, fields: Dict[str, str]) -> Dict[str, Any]:
    att = {}
    for key, attr in fields.items():
        value = getattr(obj, attr, None)
        if value is not None:
            att[key] = value
    return att


# =============================================================================
# Expanders
# =============================================================================

def expand_pod_spec(blocks: Any) -> client.V1PodSpec:
    """
    Expand a pod ``spec`` block into V1PodSpec.

    Raises:
        ValueError: If a container or volume block is malformed
    """
    in_ = first_block(blocks)
    if in_ is None:
        return client.V1PodSpec(containers=[])

    obj = client.V1PodSpec(
        containers=expand_containers(in_.get("container")),
    )
    _copy_scalars(in_, obj, _POD_SCALARS)

    init_containers = expand_containers(in_.get("init_container"))
    if init_containers:
        obj.init_containers = init_containers

    if in_.get("node_selector"):
        obj.node_selector = expand_string_map(in_["node_selector"])

    pull_secrets = block_list(in_.get("image_pull_secrets"))
    if pull_secrets:
        obj.image_pull_secrets = [
            client.V1LocalObjectReference(name=s["name"]) for s in pull_secrets
        ]

    security_context = first_block(in_.get("security_context"))
    if security_context:
        obj.security_context = expand_pod_security_context(security_context)

    volumes = block_list(in_.get("volume"))
    if volumes:
        obj.volumes = [expand_volume(v) for v in volumes]

    return obj


def expand_pod_security_context(in_: Dict[str, Any]) -> client.V1PodSecurityContext:
    obj = client.V1PodSecurityContext()
    if in_.get("run_as_user") is not None:
        obj.run_as_user = int(in_["run_as_user"])
    if in_.get("run_as_non_root") is not None:
        obj.run_as_non_root = bool(in_["run_as_non_root"])
    if in_.get("fs_group") is not None:
        obj.fs_group = int(in_["fs_group"])
    if in_.get("supplemental_groups"):
        obj.supplemental_groups = [int(g) for g in in_["supplemental_groups"]]
    return obj


def expand_containers(blocks: Any) -> List[client.V1Container]:
    """Expand a list of ``container`` blocks."""
    return [expand_container(c) for c in block_list(blocks)]


def expand_container(in_: Dict[str, Any]) -> client.V1Container:
    """
    Expand a single ``container`` block.

    Raises:
        ValueError: If the container has no name
    """
    if not in_.get("name"):
        raise ValueError(f"Container is missing a name: {in_!r}")

    obj = client.V1Container(name=in_["name"])
    _copy_scalars(in_, obj, _CONTAINER_SCALARS)

    if in_.get("command"):
        obj.command = [str(c) for c in in_["command"]]
    if in_.get("args"):
        obj.args = [str(a) for a in in_["args"]]

    env = block_list(in_.get("env"))
    if env:
        obj.env = [
            client.V1EnvVar(name=e["name"], value=_optional_str(e.get("value")))
            for e in env
        ]

    ports = block_list(in_.get("port"))
    if ports:
        obj.ports = [expand_container_port(p) for p in ports]

    resources = first_block(in_.get("resources"))
    if resources:
        obj.resources = client.V1ResourceRequirements(
            limits=expand_string_map(resources.get("limits")) or None,
            requests=expand_string_map(resources.get("requests")) or None,
        )

    mounts = block_list(in_.get("volume_mount"))
    if mounts:
        obj.volume_mounts = [expand_volume_mount(m) for m in mounts]

    liveness = first_block(in_.get("liveness_probe"))
    if liveness:
        obj.liveness_probe = expand_probe(liveness)
    readiness = first_block(in_.get("readiness_probe"))
    if readiness:
        obj.readiness_probe = expand_probe(readiness)

    return obj


def expand_container_port(in_: Dict[str, Any]) -> client.V1ContainerPort:
    obj = client.V1ContainerPort(container_port=int(in_["container_port"]))
    if in_.get("name"):
        obj.name = in_["name"]
    if in_.get("host_port"):
        obj.host_port = int(in_["host_port"])
    if in_.get("host_ip"):
        obj.host_ip = in_["host_ip"]
    if in_.get("protocol"):
        obj.protocol = in_["protocol"]
    return obj


def expand_volume_mount(in_: Dict[str, Any]) -> client.V1VolumeMount:
    obj = client.V1VolumeMount(name=in_["name"], mount_path=in_["mount_path"])
    if in_.get("read_only") is not None:
        obj.read_only = bool(in_["read_only"])
    if in_.get("sub_path"):
        obj.sub_path = in_["sub_path"]
    return obj


def expand_probe(in_: Dict[str, Any]) -> client.V1Probe:
    """Expand a ``liveness_probe`` / ``readiness_probe`` block."""
    obj = client.V1Probe()
    for key in _PROBE_SCALARS:
        if in_.get(key) is not None:
            setattr(obj, key, int(in_[key]))

    http_get = first_block(in_.get("http_get"))
    if http_get:
        obj.http_get = client.V1HTTPGetAction(
            port=expand_int_or_string(http_get["port"]),
            path=http_get.get("path"),
            host=http_get.get("host"),
            scheme=http_get.get("scheme"),
        )

    tcp_socket = first_block(in_.get("tcp_socket"))
    if tcp_socket:
        obj.tcp_socket = client.V1TCPSocketAction(
            port=expand_int_or_string(tcp_socket["port"]),
        )

    exec_ = first_block(in_.get("exec"))
    if exec_:
        obj._exec = client.V1ExecAction(
            command=[str(c) for c in exec_.get("command", [])],
        )

    return obj


def expand_volume(in_: Dict[str, Any]) -> client.V1Volume:
    """
    Expand a ``volume`` block.

    Raises:
        ValueError: If the volume has no name
    """
    if not in_.get("name"):
        raise ValueError(f"Volume is missing a name: {in_!r}")

    obj = client.V1Volume(name=in_["name"])

    empty_dir = in_.get("empty_dir")
    if empty_dir is not None:
        ed = first_block(empty_dir) or {}
        obj.empty_dir = client.V1EmptyDirVolumeSource(
            medium=ed.get("medium") or None,
            size_limit=ed.get("size_limit") or None,
        )

    secret = first_block(in_.get("secret"))
    if secret:
        obj.secret = client.V1SecretVolumeSource(
            secret_name=secret.get("secret_name"),
            default_mode=secret.get("default_mode"),
            optional=secret.get("optional"),
            items=_expand_key_to_paths(secret.get("items")),
        )

    config_map = first_block(in_.get("config_map"))
    if config_map:
        obj.config_map = client.V1ConfigMapVolumeSource(
            name=config_map.get("name"),
            default_mode=config_map.get("default_mode"),
            optional=config_map.get("optional"),
            items=_expand_key_to_paths(config_map.get("items")),
        )

    pvc = first_block(in_.get("persistent_volume_claim"))
    if pvc:
        obj.persistent_volume_claim = client.V1PersistentVolumeClaimVolumeSource(
            claim_name=pvc["claim_name"],
            read_only=pvc.get("read_only"),
        )

    return obj


def _expand_key_to_paths(items: Any) -> Optional[List[client.V1KeyToPath]]:
    items = block_list(items)
    if not items:
        return None
    return [
        client.V1KeyToPath(key=i["key"], path=i["path"], mode=i.get("mode"))
        for i in items
    ]


def _optional_str(v: Any) -> Optional[str]:
    return None if v is None else str(v)


# =============================================================================
# Flatteners
# =============================================================================

def flatten_pod_spec(in_: Optional[client.V1PodSpec]) -> List[Dict[str, Any]]:
    """
    Flatten V1PodSpec into a pod ``spec`` block.

    Raises:
        ValueError: If the pod uses a volume source with no attribute mapping
    """
    if in_ is None:
        return [{"container": []}]

    att = _flatten_scalars(in_, _POD_SCALARS)
    att["container"] = flatten_containers(in_.containers)

    if in_.init_containers:
        att["init_container"] = flatten_containers(in_.init_containers)
    if in_.node_selector:
        att["node_selector"] = dict(in_.node_selector)
    if in_.image_pull_secrets:
        att["image_pull_secrets"] = [{"name": s.name} for s in in_.image_pull_secrets]
    if in_.security_context:
        sc = flatten_pod_security_context(in_.security_context)
        if sc:
            att["security_context"] = [sc]
    if in_.volumes:
        att["volume"] = [flatten_volume(v) for v in in_.volumes]

    return [att]


def flatten_pod_security_context(in_: client.V1PodSecurityContext) -> Dict[str, Any]:
    att: Dict[str, Any] = {}
    if in_.run_as_user is not None:
        att["run_as_user"] = in_.run_as_user
    if in_.run_as_non_root is not None:
        att["run_as_non_root"] = in_.run_as_non_root
    if in_.fs_group is not None:
        att["fs_group"] = in_.fs_group
    if in_.supplemental_groups:
        att["supplemental_groups"] = list(in_.supplemental_groups)
    return att


def flatten_containers(containers: Optional[List[client.V1Container]]) -> List[Dict[str, Any]]:
    return [flatten_container(c) for c in containers or []]


def flatten_container(in_: client.V1Container) -> Dict[str, Any]:
    att = _flatten_scalars(in_, _CONTAINER_SCALARS)
    att["name"] = in_.name

    if in_.command:
        att["command"] = list(in_.command)
    if in_.args:
        att["args"] = list(in_.args)
    if in_.env:
        att["env"] = [
            {"name": e.name, "value": e.value if e.value is not None else ""}
            for e in in_.env
        ]
    if in_.ports:
        att["port"] = [flatten_container_port(p) for p in in_.ports]
    if in_.resources and (in_.resources.limits or in_.resources.requests):
        att["resources"] = [{
            "limits": dict(in_.resources.limits or {}),
            "requests": dict(in_.resources.requests or {}),
        }]
    if in_.volume_mounts:
        att["volume_mount"] = [flatten_volume_mount(m) for m in in_.volume_mounts]
    if in_.liveness_probe:
        att["liveness_probe"] = [flatten_probe(in_.liveness_probe)]
    if in_.readiness_probe:
        att["readiness_probe"] = [flatten_probe(in_.readiness_probe)]

    return att


def flatten_container_port(in_: client.V1ContainerPort) -> Dict[str, Any]:
    att: Dict[str, Any] = {"container_port": in_.container_port}
    if in_.name:
        att["name"] = in_.name
    if in_.host_port:
        att["host_port"] = in_.host_port
    if in_.host_ip:
        att["host_ip"] = in_.host_ip
    if in_.protocol:
        att["protocol"] = in_.protocol
    return att


def flatten_volume_mount(in_: client.V1VolumeMount) -> Dict[str, Any]:
    att: Dict[str, Any] = {"name": in_.name, "mount_path": in_.mount_path}
    if in_.read_only is not None:
        att["read_only"] = in_.read_only
    if in_.sub_path:
        att["sub_path"] = in_.sub_path
    return att


def flatten_probe(in_: client.V1Probe) -> Dict[str, Any]:
    att: Dict[str, Any] = {}
    for key in _PROBE_SCALARS:
        value = getattr(in_, key, None)
        if value is not None:
            att[key] = value

    if in_.http_get:
        http_get: Dict[str, Any] = {"port": flatten_int_or_string(in_.http_get.port)}
        for key in ("path", "host", "scheme"):
            value = getattr(in_.http_get, key)
            if value:
                http_get[key] = value
        att["http_get"] = [http_get]
    if in_.tcp_socket:
        att["tcp_socket"] = [{"port": flatten_int_or_string(in_.tcp_socket.port)}]
    if in_._exec:
        att["exec"] = [{"command": list(in_._exec.command or [])}]

    return att


def flatten_volume(in_: client.V1Volume) -> Dict[str, Any]:
    att: Dict[str, Any] = {"name": in_.name}

    if in_.empty_dir is not None:
        ed: Dict[str, Any] = {}
        if in_.empty_dir.medium:
            ed["medium"] = in_.empty_dir.medium
        if in_.empty_dir.size_limit:
            ed["size_limit"] = in_.empty_dir.size_limit
        att["empty_dir"] = [ed]
    elif in_.secret is not None:
        att["secret"] = [_flatten_projection(in_.secret, "secret_name")]
    elif in_.config_map is not None:
        att["config_map"] = [_flatten_projection(in_.config_map, "name")]
    elif in_.persistent_volume_claim is not None:
        pvc: Dict[str, Any] = {"claim_name": in_.persistent_volume_claim.claim_name}
        if in_.persistent_volume_claim.read_only is not None:
            pvc["read_only"] = in_.persistent_volume_claim.read_only
        att["persistent_volume_claim"] = [pvc]
    else:
        raise ValueError(f"Volume {in_.name!r} uses an unsupported volume source")

    return att


def _flatten_projection(source: Any, name_attr: str) -> Dict[str, Any]:
    att: Dict[str, Any] = {name_attr: getattr(source, name_attr)}
    if source.default_mode is not None:
        att["default_mode"] = source.default_mode
    if source.optional is not None:
        att["optional"] = source.optional
    if source.items:
        items = []
        for item in source.items:
            entry: Dict[str, Any] = {"key": item.key, "path": item.path}
            if item.mode is not None:
                entry["mode"] = item.mode
            items.append(entry)
        att["items"] = items
    return att
