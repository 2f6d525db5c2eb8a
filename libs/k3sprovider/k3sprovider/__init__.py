"""
K3s Provider - declarative management of Kubernetes Deployments

Maps resources.yaml attribute blocks to apps/v1 Deployments and back.
"""

__version__ = "0.1.0"

from .types import (
    DeploymentStrategyType,
    Plan,
    PlanAction,
    ProviderConfig,
    ProviderFile,
    ResourceConfig,
)

from .structures import (
    build_id,
    expand_int_or_string,
    expand_metadata,
    flatmap,
    flatten_int_or_string,
    flatten_metadata,
    id_parts,
)

from .structures_deployment import (
    expand_deployment_spec,
    expand_deployment_strategy,
    expand_deployment_template_pod_spec,
    expand_rolling_update_deployment,
    flatten_deployment_spec,
    flatten_deployment_strategy,
    flatten_deployment_strategy_rolling_update,
)

from .structures_pod import (
    expand_pod_spec,
    flatten_pod_spec,
)

from .schema import (
    find_config,
    load_config,
    validate_config,
)

from .resource_deployment import (
    DeploymentResource,
    apply_defaults,
    build_deployment,
)

from .provider import (
    Provider,
    ProviderError,
    build_api_client,
)

from .state import StateStore

__all__ = [
    # Types
    "DeploymentStrategyType",
    "Plan",
    "PlanAction",
    "ProviderConfig",
    "ProviderFile",
    "ResourceConfig",
    # Structures
    "build_id",
    "expand_int_or_string",
    "expand_metadata",
    "flatmap",
    "flatten_int_or_string",
    "flatten_metadata",
    "id_parts",
    "expand_deployment_spec",
    "expand_deployment_strategy",
    "expand_deployment_template_pod_spec",
    "expand_rolling_update_deployment",
    "flatten_deployment_spec",
    "flatten_deployment_strategy",
    "flatten_deployment_strategy_rolling_update",
    "expand_pod_spec",
    "flatten_pod_spec",
    # Schema
    "find_config",
    "load_config",
    "validate_config",
    # Resources
    "DeploymentResource",
    "apply_defaults",
    "build_deployment",
    # Provider
    "Provider",
    "ProviderError",
    "build_api_client",
    # State
    "StateStore",
]
