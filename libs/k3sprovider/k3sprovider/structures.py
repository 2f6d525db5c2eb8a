"""
Generic helpers for mapping between attribute trees and Kubernetes objects.

Blocks in the attribute tree follow the Terraform convention: a list holding
at most one mapping. Flatteners always emit that shape; expanders also accept
a bare mapping or a missing value.
"""

import re
from typing import Any, Dict, List, Optional, Tuple, Union

from kubernetes import client

_INT_RE = re.compile(r"[+-]?[0-9]+")


def first_block(value: Any) -> Optional[Dict[str, Any]]:
    """Return the single mapping of a block, or None if the block is empty."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, (list, tuple)):
        if len(value) == 0 or value[0] is None:
            return None
        return value[0]
    raise ValueError(f"Expected a block, got {type(value).__name__}: {value!r}")


def block_list(value: Any) -> List[Dict[str, Any]]:
    """Return a repeated block as a list of mappings."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    return [v for v in value if v is not None]


def expand_string_map(m: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Convert a generic map to a map of strings."""
    if not m:
        return {}
    return {str(k): str(v) for k, v in m.items()}


def remove_internal_keys(m: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Drop keys managed by Kubernetes itself (``*kubernetes.io/*``)."""
    if not m:
        return {}
    return {k: v for k, v in m.items() if "kubernetes.io/" not in k}


def expand_metadata(blocks: Any) -> client.V1ObjectMeta:
    """
    Expand a ``metadata`` block into V1ObjectMeta.

    Only user-settable fields are copied; computed fields (uid, generation,
    resource_version, self_link) are never sent to the API.
    """
    obj = client.V1ObjectMeta()
    in_ = first_block(blocks)
    if in_ is None:
        return obj

    if in_.get("annotations"):
        obj.annotations = expand_string_map(in_["annotations"])
    if in_.get("labels"):
        obj.labels = expand_string_map(in_["labels"])
    if in_.get("generate_name"):
        obj.generate_name = in_["generate_name"]
    if in_.get("name"):
        obj.name = in_["name"]
    if in_.get("namespace"):
        obj.namespace = in_["namespace"]

    return obj


def flatten_metadata(meta: Optional[client.V1ObjectMeta]) -> List[Dict[str, Any]]:
    """Flatten V1ObjectMeta into a ``metadata`` block."""
    if meta is None:
        meta = client.V1ObjectMeta()

    att: Dict[str, Any] = {
        "annotations": remove_internal_keys(meta.annotations),
        "labels": remove_internal_keys(meta.labels),
        "name": meta.name or "",
        "resource_version": meta.resource_version or "",
        "self_link": meta.self_link or "",
        "uid": str(meta.uid) if meta.uid else "",
        "generation": meta.generation or 0,
    }
    if meta.generate_name:
        att["generate_name"] = meta.generate_name
    if meta.namespace:
        att["namespace"] = meta.namespace

    return [att]


def build_id(meta: client.V1ObjectMeta) -> str:
    """Build a resource id of the form ``namespace/name``."""
    return f"{meta.namespace}/{meta.name}"


def id_parts(resource_id: str) -> Tuple[str, str]:
    """
    Split a ``namespace/name`` resource id.

    Raises:
        ValueError: If the id is not exactly two non-empty parts
    """
    parts = resource_id.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(
            f"Unexpected ID format ({resource_id!r}), expected namespace/name"
        )
    return parts[0], parts[1]


def expand_int_or_string(v: Union[int, str]) -> Union[int, str]:
    """
    Parse an int-or-string value.

    Plain decimal integers become ints, anything else (e.g. ``"25%"``) is
    kept as a string.

    Raises:
        ValueError: If the value is a boolean
    """
    if isinstance(v, bool):
        raise ValueError(f"Expected an integer or string, got boolean {v!r}")
    if isinstance(v, int):
        return v
    v = str(v)
    if _INT_RE.fullmatch(v):
        return int(v)
    return v


def flatten_int_or_string(v: Union[int, str]) -> str:
    """Render an int-or-string value the way it is stored in state."""
    return str(v)


def flatmap(tree: Any, prefix: str = "") -> Dict[str, str]:
    """
    Render an attribute tree as dotted keys.

    Lists add a ``<key>.#`` length entry and maps a ``<key>.%`` size entry,
    so ``{"metadata": [{"labels": {"app": "x"}}]}`` yields
    ``metadata.# = 1``, ``metadata.0.labels.% = 1`` and
    ``metadata.0.labels.app = x``.
    """
    result: Dict[str, str] = {}

    def key(k: Any) -> str:
        return f"{prefix}.{k}" if prefix else str(k)

    if isinstance(tree, dict):
        for k, v in tree.items():
            if isinstance(v, list):
                result[f"{key(k)}.#"] = str(len(v))
                for i, item in enumerate(v):
                    result.update(flatmap(item, f"{key(k)}.{i}"))
            elif isinstance(v, dict) and not _is_block_map(v):
                result[f"{key(k)}.%"] = str(len(v))
                for mk, mv in v.items():
                    result[f"{key(k)}.{mk}"] = _scalar(mv)
            elif isinstance(v, dict):
                result.update(flatmap(v, key(k)))
            elif v is not None:
                result[key(k)] = _scalar(v)
    elif tree is not None and prefix:
        result[prefix] = _scalar(tree)

    return result


def _is_block_map(v: Dict[str, Any]) -> bool:
    return any(isinstance(x, (list, dict)) for x in v.values())


def _scalar(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


# Keys holding a single nested block
SINGLE_BLOCKS = frozenset({
    "metadata", "spec", "strategy", "rolling_update", "template",
    "resources", "security_context", "liveness_probe", "readiness_probe",
    "http_get", "tcp_socket", "exec", "empty_dir", "secret", "config_map",
    "persistent_volume_claim",
})

# Keys holding repeated blocks
REPEATED_BLOCKS = frozenset({
    "container", "init_container", "env", "port", "volume_mount", "volume",
    "image_pull_secrets", "items",
})


def normalize_blocks(tree: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of an attribute tree with every block in list form.

    A block given as a bare mapping becomes a one-element list, so the
    config and the flattened state share attribute paths.
    """
    result: Dict[str, Any] = {}
    for k, v in tree.items():
        if k in SINGLE_BLOCKS or k in REPEATED_BLOCKS:
            if isinstance(v, dict):
                v = [v]
            if isinstance(v, list):
                v = [normalize_blocks(i) if isinstance(i, dict) else i for i in v]
        result[k] = v
    return result
