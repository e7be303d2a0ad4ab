"""Unit tests for kubemirror.models.objects."""

from __future__ import annotations

import pytest

from kubemirror.errors import MalformedNotificationError
from kubemirror.models.objects import Added, Deleted, ObjectKey, TrackedObject, Updated
from tests.fakes import make_obj


class TestObjectKey:
    def test_namespaced_string_form(self) -> None:
        assert str(ObjectKey("default", "pod-a")) == "default/pod-a"

    def test_cluster_scoped_string_form(self) -> None:
        assert str(ObjectKey("", "node-1")) == "node-1"

    def test_parse_namespaced(self) -> None:
        assert ObjectKey.parse("kube-system/dns") == ObjectKey("kube-system", "dns")

    def test_parse_cluster_scoped(self) -> None:
        assert ObjectKey.parse("node-1") == ObjectKey("", "node-1")

    def test_keys_sort_by_namespace_then_name(self) -> None:
        keys = [ObjectKey("b", "a"), ObjectKey("a", "z"), ObjectKey("a", "b")]
        assert sorted(keys) == [ObjectKey("a", "b"), ObjectKey("a", "z"), ObjectKey("b", "a")]


class TestTrackedObject:
    def test_from_dict_extracts_identity_and_version(self) -> None:
        obj = TrackedObject.from_dict({"metadata": {"name": "pod-a", "namespace": "default", "resourceVersion": "10"}})
        assert obj.key == ObjectKey("default", "pod-a")
        assert obj.resource_version == "10"

    def test_from_dict_cluster_scoped_has_empty_namespace(self) -> None:
        obj = TrackedObject.from_dict({"metadata": {"name": "node-1", "resourceVersion": "3"}})
        assert obj.namespace == ""

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "not-a-dict",
            {},
            {"metadata": "nope"},
            {"metadata": {"namespace": "default"}},
        ],
    )
    def test_from_dict_rejects_malformed_objects(self, raw: object) -> None:
        with pytest.raises(MalformedNotificationError):
            TrackedObject.from_dict(raw)

    def test_phase_and_labels(self) -> None:
        obj = TrackedObject.from_dict(
            {
                "metadata": {"name": "p", "namespace": "ns", "resourceVersion": "1", "labels": {"app": "web"}},
                "status": {"phase": "Pending"},
            }
        )
        assert obj.phase == "Pending"
        assert obj.labels == {"app": "web"}

    def test_phase_missing_status(self) -> None:
        obj = TrackedObject.from_dict({"metadata": {"name": "cm", "namespace": "ns", "resourceVersion": "1"}})
        assert obj.phase == ""

    def test_equality_ignores_raw_payload(self) -> None:
        a = make_obj("pod-a", "5", phase="Running")
        b = make_obj("pod-a", "5", phase="Failed")
        assert a == b


class TestChangeRecords:
    def test_records_expose_key_and_latest(self) -> None:
        old = make_obj("pod-a", "1")
        new = make_obj("pod-a", "2")
        assert Added(old).latest is old
        assert Updated(old, new).latest is new
        assert Updated(old, new).key == ObjectKey("default", "pod-a")
        assert Deleted(new).latest is new

    def test_deleted_defaults_to_observed_directly(self) -> None:
        assert Deleted(make_obj("pod-a", "1")).observed_directly is True
