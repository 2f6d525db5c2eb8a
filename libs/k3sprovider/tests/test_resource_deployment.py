"""Tests for the kubernetes_deployment resource."""

import copy
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from k3sprovider.resource_deployment import (
    DeploymentResource,
    apply_defaults,
    build_deployment,
    diff_attributes,
)
from k3sprovider.types import PlanAction


def deployment_config(name="web", image="nginx:1.7.9"):
    return {
        "metadata": {
            "name": name,
            "labels": {"app": "deployment_label"},
        },
        "spec": {
            "template": {
                "spec": {
                    "container": {"image": image, "name": "containername"},
                },
            },
        },
    }


def server_copy(body, uid="uid-1", generation=1):
    """Simulate the API server echoing an object back with computed fields."""
    out = copy.deepcopy(body)
    out.metadata.uid = uid
    out.metadata.generation = generation
    out.metadata.resource_version = "100"
    out.metadata.annotations = dict(out.metadata.annotations or {})
    out.metadata.annotations["deployment.kubernetes.io/revision"] = "1"
    return out


@pytest.fixture
def apps_v1():
    """Create a mocked AppsV1Api."""
    api = MagicMock()
    api.create_namespaced_deployment.side_effect = (
        lambda namespace, body: server_copy(body)
    )
    api.replace_namespaced_deployment.side_effect = (
        lambda name, namespace, body: server_copy(body, uid=body.metadata.uid)
    )
    return api


@pytest.fixture
def resource(apps_v1):
    return DeploymentResource(apps_v1, poll_interval=0, timeout=1)


class TestApplyDefaults:
    def test_defaults(self):
        config = apply_defaults(deployment_config())

        metadata = config["metadata"][0]
        assert metadata["namespace"] == "default"
        assert metadata["annotations"] == {}

        spec = config["spec"][0]
        assert spec["replicas"] == 1
        assert spec["min_ready_seconds"] == 0
        assert spec["selector"] == {"app": "deployment_label"}
        assert spec["strategy"] == [{
            "type": "RollingUpdate",
            "rolling_update": [{"max_surge": "25%", "max_unavailable": "25%"}],
        }]

    def test_recreate_has_no_rolling_update(self):
        config = deployment_config()
        config["spec"]["strategy"] = {"type": "Recreate"}
        strategy = apply_defaults(config)["spec"][0]["strategy"][0]
        assert strategy == {"type": "Recreate"}

    def test_explicit_selector_kept(self):
        config = deployment_config()
        config["spec"]["selector"] = {"tier": "web"}
        assert apply_defaults(config)["spec"][0]["selector"] == {"tier": "web"}

    def test_input_not_mutated(self):
        config = deployment_config()
        apply_defaults(config)
        assert config == deployment_config()

    def test_empty_namespace_defaults(self):
        config = deployment_config()
        config["metadata"]["namespace"] = ""
        assert apply_defaults(config)["metadata"][0]["namespace"] == "default"
        assert build_deployment(config).metadata.namespace == "default"

    def test_options_removed(self):
        config = deployment_config()
        config["wait_for_rollout"] = True
        assert "wait_for_rollout" not in apply_defaults(config)


class TestBuildDeployment:
    def test_build(self):
        body = build_deployment(deployment_config())

        assert body.api_version == "apps/v1"
        assert body.kind == "Deployment"
        assert body.metadata.name == "web"
        assert body.metadata.namespace == "default"
        assert body.spec.replicas == 1
        assert body.spec.selector.match_labels == {"app": "deployment_label"}
        assert body.spec.template.metadata.labels == {"app": "deployment_label"}
        assert body.spec.strategy.rolling_update.max_surge == "25%"


class TestCreate:
    def test_create(self, resource, apps_v1):
        state = resource.create(deployment_config())

        kwargs = apps_v1.create_namespaced_deployment.call_args.kwargs
        assert kwargs["namespace"] == "default"
        assert kwargs["body"].metadata.name == "web"

        assert state["id"] == "default/web"
        metadata = state["metadata"][0]
        assert metadata["uid"] == "uid-1"
        assert metadata["annotations"] == {}
        assert metadata["labels"] == {"app": "deployment_label"}
        container = state["spec"][0]["template"][0]["spec"][0]["container"][0]
        assert container["image"] == "nginx:1.7.9"

    def test_create_waits_for_rollout(self, resource, apps_v1):
        created = {}

        def create(namespace, body):
            created["obj"] = server_copy(body)
            return created["obj"]

        def read(name, namespace):
            obj = copy.deepcopy(created["obj"])
            obj.status = client.V1DeploymentStatus(
                observed_generation=1,
                replicas=1,
                updated_replicas=1,
                available_replicas=1,
            )
            return obj

        apps_v1.create_namespaced_deployment.side_effect = create
        apps_v1.read_namespaced_deployment.side_effect = read

        config = deployment_config()
        config["wait_for_rollout"] = True
        state = resource.create(config)

        assert state["id"] == "default/web"
        assert apps_v1.read_namespaced_deployment.called

    def test_rollout_timeout(self, apps_v1):
        resource = DeploymentResource(apps_v1, poll_interval=0, timeout=0.05)
        apps_v1.read_namespaced_deployment.side_effect = (
            lambda name, namespace: server_copy(build_deployment(deployment_config()))
        )
        with pytest.raises(TimeoutError):
            resource.wait_for_rollout("default/web")


class TestRead:
    def test_read(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.return_value = server_copy(
            build_deployment(deployment_config())
        )
        state = resource.read("default/web")

        apps_v1.read_namespaced_deployment.assert_called_with(name="web", namespace="default")
        assert state["id"] == "default/web"
        assert state["spec"][0]["replicas"] == 1

    def test_read_missing(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=404, reason="Not Found")
        assert resource.read("default/web") is None
        assert resource.exists("default/web") is False

    def test_read_error_propagates(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=500, reason="Boom")
        with pytest.raises(ApiException):
            resource.read("default/web")

    def test_read_bad_id(self, resource):
        with pytest.raises(ValueError):
            resource.read("web")

    def test_import(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.return_value = server_copy(
            build_deployment(deployment_config())
        )
        assert resource.import_state("default/web")["id"] == "default/web"

    def test_import_missing(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=404)
        with pytest.raises(ValueError):
            resource.import_state("default/web")


class TestUpdate:
    def test_update_in_place(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.return_value = server_copy(
            build_deployment(deployment_config()), uid="uid-7"
        )
        state = resource.update("default/web", deployment_config(image="nginx:1.11"))

        kwargs = apps_v1.replace_namespaced_deployment.call_args.kwargs
        assert kwargs["name"] == "web"
        assert kwargs["namespace"] == "default"
        body = kwargs["body"]
        assert body.metadata.uid == "uid-7"
        assert body.metadata.resource_version == "100"
        assert body.metadata.annotations["deployment.kubernetes.io/revision"] == "1"
        assert body.spec.template.spec.containers[0].image == "nginx:1.11"

        assert state["metadata"][0]["uid"] == "uid-7"
        container = state["spec"][0]["template"][0]["spec"][0]["container"][0]
        assert container["image"] == "nginx:1.11"
        apps_v1.create_namespaced_deployment.assert_not_called()
        apps_v1.delete_namespaced_deployment.assert_not_called()

    def test_update_missing(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=404)
        with pytest.raises(ValueError):
            resource.update("default/web", deployment_config())


class TestDelete:
    def test_delete(self, resource, apps_v1):
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=404)
        resource.delete("default/web")

        kwargs = apps_v1.delete_namespaced_deployment.call_args.kwargs
        assert kwargs["name"] == "web"
        assert kwargs["namespace"] == "default"
        assert kwargs["body"].propagation_policy == "Foreground"

    def test_delete_already_gone(self, resource, apps_v1):
        apps_v1.delete_namespaced_deployment.side_effect = ApiException(status=404)
        resource.delete("default/web")

    def test_delete_error_propagates(self, resource, apps_v1):
        apps_v1.delete_namespaced_deployment.side_effect = ApiException(status=403)
        with pytest.raises(ApiException):
            resource.delete("default/web")

    def test_delete_timeout(self, apps_v1):
        resource = DeploymentResource(apps_v1, poll_interval=0, timeout=0.05)
        apps_v1.read_namespaced_deployment.return_value = server_copy(
            build_deployment(deployment_config())
        )
        with pytest.raises(TimeoutError):
            resource.delete("default/web")


class TestPlan:
    @pytest.fixture
    def state(self, resource):
        return resource.create(deployment_config())

    def test_create(self, resource):
        assert resource.plan(deployment_config(), None).action == PlanAction.CREATE

    def test_noop(self, resource, state):
        plan = resource.plan(deployment_config(), state)
        assert plan.action == PlanAction.NOOP
        assert plan.changes == []

    def test_update_image(self, resource, state):
        plan = resource.plan(deployment_config(image="nginx:1.11"), state)
        assert plan.action == PlanAction.UPDATE
        assert plan.resource_id == "default/web"
        assert plan.changes == ["spec.0.template.0.spec.0.container.0.image"]

    def test_rename_forces_replace(self, resource, state):
        plan = resource.plan(deployment_config(name="web2"), state)
        assert plan.action == PlanAction.REPLACE
        assert "metadata.0.name" in plan.changes

    def test_relabel_forces_replace(self, resource, state):
        config = deployment_config()
        config["metadata"]["labels"] = {"app": "other"}
        plan = resource.plan(config, state)

        assert plan.action == PlanAction.REPLACE
        assert "spec.0.selector.app" in plan.changes

    def test_removed_optional_field_is_a_change(self, resource):
        config = deployment_config()
        config["spec"]["paused"] = True
        state = resource.create(config)
        assert state["spec"][0]["paused"] is True

        plan = resource.plan(deployment_config(), state)
        assert plan.action == PlanAction.UPDATE
        assert plan.changes == ["spec.0.paused"]

    def test_removed_working_dir_is_a_change(self, resource):
        config = deployment_config()
        config["spec"]["template"]["spec"]["container"]["working_dir"] = "/srv"
        state = resource.create(config)

        changes = resource.plan(deployment_config(), state).changes
        assert changes == ["spec.0.template.0.spec.0.container.0.working_dir"]

    def test_server_defaults_ignored(self, resource, state):
        spec = state["spec"][0]
        spec["progress_deadline_seconds"] = 600
        spec["revision_history_limit"] = 10
        pod_spec = spec["template"][0]["spec"][0]
        pod_spec["restart_policy"] = "Always"
        pod_spec["dns_policy"] = "ClusterFirst"
        pod_spec["termination_grace_period_seconds"] = 30
        pod_spec["container"][0]["image_pull_policy"] = "IfNotPresent"

        assert resource.plan(deployment_config(), state).action == PlanAction.NOOP

    def test_non_default_server_value_is_a_change(self, resource, state):
        state["spec"][0]["revision_history_limit"] = 3
        plan = resource.plan(deployment_config(), state)
        assert plan.changes == ["spec.0.revision_history_limit"]

    def test_explicit_false_matches_unset(self, resource, state):
        config = deployment_config()
        config["spec"]["paused"] = False
        assert resource.plan(config, state).action == PlanAction.NOOP

    def test_delete(self, resource, state):
        plan = resource.plan(None, state)
        assert plan.action == PlanAction.DELETE
        assert plan.resource_id == "default/web"

    def test_removed_env_detected(self, resource):
        config = deployment_config()
        config["spec"]["template"]["spec"]["container"]["env"] = [{"name": "A", "value": "1"}]
        state = resource.create(config)

        changes = diff_attributes(apply_defaults(deployment_config()), state)
        assert "spec.0.template.0.spec.0.container.0.env.#" in changes

    def test_apply_update(self, resource, apps_v1, state):
        apps_v1.read_namespaced_deployment.return_value = server_copy(
            build_deployment(deployment_config())
        )
        plan = resource.plan(deployment_config(image="nginx:1.11"), state)
        new_state = resource.apply(plan, deployment_config(image="nginx:1.11"))

        assert apps_v1.replace_namespaced_deployment.called
        assert new_state["metadata"][0]["uid"] == state["metadata"][0]["uid"]
