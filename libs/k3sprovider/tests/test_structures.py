"""Tests for generic attribute tree helpers."""

import pytest
from kubernetes import client

from k3sprovider.structures import (
    block_list,
    build_id,
    expand_int_or_string,
    expand_metadata,
    expand_string_map,
    first_block,
    flatmap,
    flatten_int_or_string,
    flatten_metadata,
    id_parts,
    normalize_blocks,
    remove_internal_keys,
)


class TestBlocks:
    def test_first_block_list(self):
        assert first_block([{"a": 1}]) == {"a": 1}

    def test_first_block_bare_mapping(self):
        assert first_block({"a": 1}) == {"a": 1}

    def test_first_block_empty(self):
        assert first_block(None) is None
        assert first_block([]) is None
        assert first_block([None]) is None

    def test_first_block_invalid(self):
        with pytest.raises(ValueError):
            first_block("nope")

    def test_block_list(self):
        assert block_list(None) == []
        assert block_list({"name": "a"}) == [{"name": "a"}]
        assert block_list([{"name": "a"}, None, {"name": "b"}]) == [
            {"name": "a"},
            {"name": "b"},
        ]

    def test_normalize_blocks_wraps_nested_mappings(self):
        tree = {
            "metadata": {"name": "web", "labels": {"app": "web"}},
            "spec": {
                "template": {
                    "spec": {"container": {"name": "c", "image": "nginx"}},
                },
            },
        }
        result = normalize_blocks(tree)

        assert result["metadata"] == [{"name": "web", "labels": {"app": "web"}}]
        pod_spec = result["spec"][0]["template"][0]["spec"][0]
        assert pod_spec["container"] == [{"name": "c", "image": "nginx"}]

    def test_normalize_blocks_keeps_maps(self):
        result = normalize_blocks({"metadata": [{"labels": {"spec": "x"}}]})
        assert result["metadata"][0]["labels"] == {"spec": "x"}


class TestStringMaps:
    def test_expand_string_map(self):
        assert expand_string_map({"a": 1, "b": True}) == {"a": "1", "b": "True"}
        assert expand_string_map(None) == {}

    def test_remove_internal_keys(self):
        annotations = {
            "deployment.kubernetes.io/revision": "1",
            "kubernetes.io/change-cause": "x",
            "team": "core",
        }
        assert remove_internal_keys(annotations) == {"team": "core"}
        assert remove_internal_keys(None) == {}


class TestMetadata:
    def test_expand_metadata(self):
        meta = expand_metadata([{
            "name": "web",
            "namespace": "apps",
            "labels": {"app": "web"},
            "annotations": {"owner": "me"},
        }])
        assert meta.name == "web"
        assert meta.namespace == "apps"
        assert meta.labels == {"app": "web"}
        assert meta.annotations == {"owner": "me"}
        assert meta.generate_name is None

    def test_expand_metadata_ignores_computed(self):
        meta = expand_metadata([{"name": "web", "uid": "123", "generation": 4}])
        assert meta.uid is None
        assert meta.generation is None

    def test_expand_metadata_empty(self):
        assert expand_metadata([]) == client.V1ObjectMeta()

    def test_flatten_metadata(self):
        meta = client.V1ObjectMeta(
            name="web",
            namespace="apps",
            labels={"app": "web"},
            annotations={"deployment.kubernetes.io/revision": "2"},
            generation=3,
            resource_version="999",
            self_link="/apis/apps/v1/namespaces/apps/deployments/web",
            uid="abc-123",
        )
        att = flatten_metadata(meta)[0]

        assert att["name"] == "web"
        assert att["namespace"] == "apps"
        assert att["labels"] == {"app": "web"}
        assert att["annotations"] == {}
        assert att["generation"] == 3
        assert att["resource_version"] == "999"
        assert att["uid"] == "abc-123"
        assert "generate_name" not in att

    def test_flatten_metadata_generate_name(self):
        att = flatten_metadata(client.V1ObjectMeta(generate_name="web-"))[0]
        assert att["generate_name"] == "web-"
        assert "namespace" not in att


class TestIds:
    def test_build_id(self):
        meta = client.V1ObjectMeta(name="web", namespace="apps")
        assert build_id(meta) == "apps/web"

    def test_id_parts(self):
        assert id_parts("apps/web") == ("apps", "web")

    @pytest.mark.parametrize("bad", ["web", "a/b/c", "/web", "apps/"])
    def test_id_parts_invalid(self, bad):
        with pytest.raises(ValueError):
            id_parts(bad)


class TestIntOrString:
    def test_integer_strings_become_ints(self):
        assert expand_int_or_string("3") == 3
        assert expand_int_or_string("-1") == -1
        assert expand_int_or_string(2) == 2

    def test_percentages_stay_strings(self):
        assert expand_int_or_string("25%") == "25%"

    def test_whitespace_is_not_an_integer(self):
        assert expand_int_or_string(" 3") == " 3"
        assert expand_int_or_string("3\n") == "3\n"

    def test_only_ascii_digits(self):
        assert expand_int_or_string("٣") == "٣"

    def test_booleans_rejected(self):
        with pytest.raises(ValueError):
            expand_int_or_string(True)

    def test_flatten(self):
        assert flatten_int_or_string(1) == "1"
        assert flatten_int_or_string("25%") == "25%"


class TestFlatmap:
    def test_blocks_maps_and_lists(self):
        tree = {
            "metadata": [{
                "name": "web",
                "labels": {"app": "web"},
                "annotations": {},
            }],
            "spec": [{
                "replicas": 2,
                "template": [{
                    "spec": [{
                        "host_network": False,
                        "container": [{"name": "c", "command": ["a", "b"]}],
                    }],
                }],
            }],
        }
        flat = flatmap(tree)

        assert flat["metadata.#"] == "1"
        assert flat["metadata.0.name"] == "web"
        assert flat["metadata.0.labels.%"] == "1"
        assert flat["metadata.0.labels.app"] == "web"
        assert flat["metadata.0.annotations.%"] == "0"
        assert flat["spec.0.replicas"] == "2"
        assert flat["spec.0.template.0.spec.0.host_network"] == "false"
        assert flat["spec.0.template.0.spec.0.container.0.command.#"] == "2"
        assert flat["spec.0.template.0.spec.0.container.0.command.1"] == "b"

    def test_none_values_are_skipped(self):
        assert flatmap({"a": None, "b": 1}) == {"b": "1"}
