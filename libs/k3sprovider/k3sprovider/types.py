"""
Type definitions for k3sprovider.

These dataclasses represent the resources.yaml file and the provider
settings used to build the Kubernetes API client.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class DeploymentStrategyType(str, Enum):
    """Deployment update strategy."""
    ROLLING_UPDATE = "RollingUpdate"
    RECREATE = "Recreate"


class PlanAction(str, Enum):
    """Action needed to converge a resource on its configuration."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "noop"


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ProviderConfig:
    """Settings for connecting to the Kubernetes API.

    Resolution order when building the client:
    - in_cluster: service account mounted into the pod
    - load_config_file: kubeconfig at config_path (with config_context)
    - host/token: explicit API server endpoint
    """
    host: Optional[str] = None
    config_path: Optional[str] = None
    config_context: Optional[str] = None
    token: Optional[str] = None
    insecure: bool = False
    load_config_file: bool = True
    in_cluster: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ProviderConfig":
        if not data:
            return cls()
        return cls(
            host=data.get("host"),
            config_path=data.get("config_path"),
            config_context=data.get("config_context"),
            token=data.get("token"),
            insecure=data.get("insecure", False),
            load_config_file=data.get("load_config_file", True),
            in_cluster=data.get("in_cluster", False),
        )

    @classmethod
    def from_env(
        cls,
        data: Optional[Dict] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ProviderConfig":
        """
        Build settings from a provider block, falling back to KUBE_* variables.

        Values set in ``data`` win over the environment.
        """
        environ = os.environ if environ is None else environ
        config = cls.from_dict(data)
        data = data or {}

        if "host" not in data and environ.get("KUBE_HOST"):
            config.host = environ["KUBE_HOST"]
        if "config_path" not in data and environ.get("KUBE_CONFIG_PATH"):
            config.config_path = environ["KUBE_CONFIG_PATH"]
        if "config_context" not in data and environ.get("KUBE_CTX"):
            config.config_context = environ["KUBE_CTX"]
        if "token" not in data and environ.get("KUBE_TOKEN"):
            config.token = environ["KUBE_TOKEN"]

        for key, var in (
            ("insecure", "KUBE_INSECURE"),
            ("load_config_file", "KUBE_LOAD_CONFIG_FILE"),
            ("in_cluster", "KUBE_IN_CLUSTER"),
        ):
            value = _env_bool(environ.get(var))
            if key not in data and value is not None:
                setattr(config, key, value)

        return config


@dataclass
class Plan:
    """Planned change for one resource."""
    action: PlanAction
    resource_id: Optional[str] = None
    changes: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.action != PlanAction.NOOP


@dataclass
class ResourceConfig:
    """A single resource block from resources.yaml."""
    type: str
    name: str
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def address(self) -> str:
        """Resource address, e.g. ``kubernetes_deployment.web``."""
        return f"{self.type}.{self.name}"


@dataclass
class ProviderFile:
    """Root resources.yaml configuration."""
    version: str = "1"
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    resources: List[ResourceConfig] = field(default_factory=list)

    @classmethod
    def from_dict(
        cls,
        data: Optional[Dict],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ProviderFile":
        """Create ProviderFile from dictionary."""
        data = data or {}
        resources = []
        for type_name, blocks in (data.get("resource") or {}).items():
            for name, config in (blocks or {}).items():
                resources.append(ResourceConfig(
                    type=type_name,
                    name=name,
                    config=config or {},
                ))

        return cls(
            version=str(data.get("version", "1")),
            provider=ProviderConfig.from_env(data.get("provider"), environ),
            resources=resources,
        )

    def get_resource(self, address: str) -> Optional[ResourceConfig]:
        """Get resource config by address."""
        for resource in self.resources:
            if resource.address == address:
                return resource
        return None
