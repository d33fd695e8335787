#!/usr/bin/env python3
"""
KUBESWARM MANIFEST SUITE
------------------------
Manifest documents become tracked objects in file order; broken
documents are carried as failing objects so the batch still runs.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import pytest

from kubeswarm.backends.memory import InMemoryBackend
from kubeswarm.core.engine import SyncEngine
from kubeswarm.core.errors import ManifestError
from kubeswarm.core.models import ObjectRef, OperationResult
from kubeswarm.manifests.loader import LAST_APPLIED, ManifestLoader, manifest_mutation
from kubeswarm.validator.validator import KubeValidator

CLUSTER_MANIFEST = """
apiVersion: v1
kind: Namespace
metadata:
  name: ipfs
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: ipfs-cluster-config
  labels:
    app: ipfs-cluster
data:
  bootstrap-peers: ""
---
---
apiVersion: apps/v1
kind: StatefulSet
metadata:
  name: ipfs-cluster
  namespace: storage
spec:
  replicas: 3
"""


def test_documents_load_in_order():
    tracked = ManifestLoader().load(CLUSTER_MANIFEST)
    assert [t.ref.kind for t in tracked] == ["Namespace", "ConfigMap", "StatefulSet"]
    assert tracked[2].ref == ObjectRef("apps/v1", "StatefulSet", "ipfs-cluster", "storage")


def test_default_namespace_skips_cluster_scoped_kinds():
    tracked = ManifestLoader(default_namespace="ipfs").load(CLUSTER_MANIFEST)
    assert tracked[0].ref.namespace is None
    assert tracked[1].ref.namespace == "ipfs"
    assert tracked[1].desired["metadata"]["namespace"] == "ipfs"
    # Explicit namespaces win
    assert tracked[2].ref.namespace == "storage"


def test_invalid_documents_fail_on_apply():
    text = CLUSTER_MANIFEST + "---\nkind: Service\nmetadata:\n  name: orphan\n---\n- just\n- a list\n"
    tracked = ManifestLoader().load(text)
    assert len(tracked) == 5
    assert tracked[3].ref.name == "orphan"
    assert tracked[3].ref.document == 3
    assert tracked[4].ref.kind == "Unknown"

    report = SyncEngine(InMemoryBackend()).synchronize_report(tracked)
    assert report.requeue is True
    assert [o.failed for o in report.outcomes] == [False, False, False, True, True]
    assert all(isinstance(o.error, ManifestError) for o in report.failures)


def test_duplicate_documents_are_isolated():
    doc = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: dup\n  namespace: a\n"
    tracked = ManifestLoader().load(doc + "---\n" + doc)
    assert tracked[0].ref.name == "dup"
    assert tracked[1].ref.name == "dup"
    assert tracked[1].ref != tracked[0].ref

    report = SyncEngine(InMemoryBackend()).synchronize_report(tracked)
    assert report.outcomes[0].result is OperationResult.CREATED
    assert "duplicate" in str(report.outcomes[1].error)


def test_unparseable_yaml_raises():
    with pytest.raises(ManifestError):
        ManifestLoader().load("apiVersion: v1\nkind: [unclosed\n")


def test_missing_file_raises(tmp_path):
    with pytest.raises(ManifestError):
        ManifestLoader().load_file(tmp_path / "nope.yaml")


def test_load_file_reads_bom(tmp_path):
    path = tmp_path / "cm.yaml"
    path.write_text("\ufeffapiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: bom\n", encoding="utf-8")
    tracked = ManifestLoader().load_file(path)
    assert tracked[0].ref.name == "bom"


def test_manifest_mutation_merges_into_the_live_object():
    live = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "cfg", "labels": {"team": "storage"}, "resourceVersion": "7"},
        "data": {"old": "value"},
    }
    desired = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "cfg", "labels": {"app": "ipfs"}},
        "data": {"new": "value"},
    }
    mutate = manifest_mutation(desired)
    mutate(live)
    assert live["metadata"]["labels"] == {"team": "storage", "app": "ipfs"}
    assert live["metadata"]["resourceVersion"] == "7"
    assert live["data"] == {"old": "value", "new": "value"}
    assert LAST_APPLIED in live["metadata"]["annotations"]

    snapshot = repr(live)
    mutate(live)
    assert repr(live) == snapshot


def test_manifest_mutation_drops_fields_it_no_longer_sets():
    live = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cfg"}}
    manifest_mutation({"kind": "ConfigMap", "metadata": {"name": "cfg", "labels": {"tier": "a"}},
                       "data": {"keep": "1", "drop": "2"}, "binaryData": {"blob": "AA=="}})(live)
    live["data"]["server-side"] = "x"

    manifest_mutation({"kind": "ConfigMap", "metadata": {"name": "cfg"}, "data": {"keep": "1"}})(live)
    assert live["data"] == {"keep": "1", "server-side": "x"}
    assert "binaryData" not in live
    assert "labels" not in live["metadata"]


def test_manifest_mutation_merges_containers_by_name():
    live = {"spec": {"containers": [
        {"name": "ipfs", "image": "kubo:old", "imagePullPolicy": "IfNotPresent"},
        {"name": "sidecar", "image": "busybox"},
    ]}}
    manifest_mutation({"spec": {"containers": [{"name": "ipfs", "image": "kubo:new"}]}})(live)
    assert live["spec"]["containers"] == [
        {"name": "ipfs", "image": "kubo:new", "imagePullPolicy": "IfNotPresent"},
    ]


def test_broken_documents_log_their_real_name(caplog):
    doc = "kind: Service\nmetadata:\n  name: orphan\n"
    tracked = ManifestLoader().load(doc + "---\n" + doc)
    assert tracked[0].ref != tracked[1].ref

    with caplog.at_level("ERROR", logger="kubeswarm"):
        SyncEngine(InMemoryBackend()).synchronize(tracked)
    names = [r.objName for r in caplog.records if hasattr(r, "objName")]
    assert names == ["orphan", "orphan"]
    assert "document 1" in caplog.records[-1].getMessage()


def test_reapplying_a_manifest_is_unchanged():
    backend = InMemoryBackend()
    engine = SyncEngine(backend)
    engine.synchronize(ManifestLoader().load(CLUSTER_MANIFEST))
    report = engine.synchronize_report(ManifestLoader().load(CLUSTER_MANIFEST))
    assert [o.result for o in report.outcomes] == [OperationResult.UNCHANGED] * 3


@pytest.mark.parametrize("doc,ok", [
    ({"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p"}}, True),
    ({"kind": "Pod", "metadata": {"name": "p"}}, False),
    ({"apiVersion": "v1", "kind": "", "metadata": {"name": "p"}}, False),
    ({"apiVersion": "v1", "kind": "Pod", "metadata": {}}, False),
    ({"apiVersion": "v1", "kind": "Pod", "metadata": "p"}, False),
    ({"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p", "namespace": ""}}, False),
    (["not", "a", "map"], False),
])
def test_validator(doc, ok):
    valid, message = KubeValidator().validate(doc)
    assert valid is ok
    assert message
