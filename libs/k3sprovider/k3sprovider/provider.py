"""
Provider: builds the Kubernetes API client and hands out resources.
"""

import logging
import os
from typing import Callable, Dict, Optional

from kubernetes import client, config

from .resource_deployment import DeploymentResource
from .types import ProviderConfig

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when the provider cannot be configured or a resource is unknown."""


def build_api_client(settings: ProviderConfig) -> client.ApiClient:
    """
    Build a Kubernetes ApiClient from provider settings.

    Raises:
        ProviderError: If no usable configuration could be loaded
    """
    if settings.in_cluster:
        configuration = client.Configuration()
        try:
            config.load_incluster_config(client_configuration=configuration)
        except config.ConfigException as e:
            raise ProviderError(f"Failed to load in-cluster config: {e}") from e
        logger.info("Loaded in-cluster Kubernetes configuration")
        return client.ApiClient(configuration)

    if settings.load_config_file:
        config_file = (
            os.path.expanduser(settings.config_path) if settings.config_path else None
        )
        try:
            api_client = config.new_client_from_config(
                config_file=config_file,
                context=settings.config_context,
            )
        except (config.ConfigException, OSError) as e:
            if not settings.host:
                raise ProviderError(f"Failed to load kubeconfig: {e}") from e
            logger.warning(f"Failed to load kubeconfig, using host {settings.host}: {e}")
        else:
            if settings.host:
                api_client.configuration.host = settings.host
            if settings.token:
                api_client.configuration.api_key = {
                    "authorization": f"Bearer {settings.token}",
                }
            if settings.insecure:
                api_client.configuration.verify_ssl = False
            logger.info(
                f"Loaded kubeconfig {config_file or '(default)'}"
                f" context={settings.config_context or '(current)'}"
            )
            return api_client

    if not settings.host:
        raise ProviderError(
            "No Kubernetes configuration: set host, config_path or in_cluster"
        )

    configuration = client.Configuration()
    configuration.host = settings.host
    configuration.verify_ssl = not settings.insecure
    if settings.token:
        configuration.api_key = {"authorization": f"Bearer {settings.token}"}
    logger.info(f"Using Kubernetes API server {settings.host}")
    return client.ApiClient(configuration)


class Provider:
    """
    Kubernetes provider.

    Resources are looked up by type name, e.g. ``kubernetes_deployment``.
    """

    resource_types: Dict[str, Callable[[client.ApiClient], object]] = {
        "kubernetes_deployment": lambda api_client: DeploymentResource(
            client.AppsV1Api(api_client)
        ),
    }

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self._api_client = api_client

    def configure(self, settings: ProviderConfig) -> "Provider":
        """Build the API client from settings. Returns self for chaining."""
        self._api_client = build_api_client(settings)
        return self

    @property
    def meta(self) -> client.ApiClient:
        """The configured ApiClient."""
        if self._api_client is None:
            raise ProviderError("Provider is not configured")
        return self._api_client

    def resource(self, type_name: str):
        """
        Get a resource implementation by type name.

        Raises:
            ProviderError: If the type is not supported
        """
        factory = self.resource_types.get(type_name)
        if factory is None:
            supported = ", ".join(sorted(self.resource_types))
            raise ProviderError(
                f"Unsupported resource type {type_name!r} (supported: {supported})"
            )
        return factory(self.meta)
