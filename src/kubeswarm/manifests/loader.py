#!/usr/bin/env python3
"""
KUBESWARM MANIFEST LOADER
-------------------------
Turns multi-document YAML into an ordered batch of tracked objects.
Document order in the file is the apply order.

Author: KubeSwarm Team
Date: 2026-10-18
"""

import base64
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kubeswarm.core.engine import err_func
from kubeswarm.core.errors import ManifestError
from kubeswarm.core.models import Mutation, ObjectRef, TrackedObject
from kubeswarm.validator.validator import KubeValidator

logger = logging.getLogger("kubeswarm.manifests")

# Resources that should NOT have a namespace (Cluster-scoped)
CLUSTER_SCOPED = [
    "Namespace", "Node", "ClusterRole", "ClusterRoleBinding",
    "StorageClass", "PersistentVolume", "CustomResourceDefinition",
]

# Top-level fields never copied from the manifest onto the live object.
UNMANAGED_FIELDS = ("apiVersion", "kind", "metadata", "status")

# Records what the last apply set, so fields dropped from the manifest can
# be dropped from the live object too (kubectl's client-side apply scheme).
LAST_APPLIED = "kubeswarm.io/last-applied-configuration"


def _named(items: List[Any]) -> bool:
    return all(isinstance(item, dict) and "name" in item for item in items)


def _merge_list(live: List[Any], desired: List[Any], previous: Any) -> List[Any]:
    previous = previous if isinstance(previous, list) else []
    if _named(live) and _named(desired):
        # containers, env, volumes, ports...
        current = {item["name"]: item for item in live}
        applied = {item["name"]: item for item in previous if isinstance(item, dict) and "name" in item}
        return [_merge(current.get(item["name"]), item, applied.get(item["name"])) for item in desired]
    if len(live) == len(desired) and all(isinstance(item, dict) for item in live + desired):
        if len(previous) != len(desired):
            previous = [None] * len(desired)
        return [_merge(*items) for items in zip(live, desired, previous)]
    return copy.deepcopy(desired)


def _merge(live: Any, desired: Any, previous: Any = None) -> Any:
    """
    Lays `desired` over `live` and returns the result.

    Mappings merge key by key, so fields the API server defaulted survive;
    keys the previous apply set that `desired` no longer has are removed.
    Lists of mappings merge by `name` or, failing that, by position when
    the lengths match. Anything else is replaced by the desired value.
    """
    if isinstance(desired, dict) and isinstance(live, dict):
        previous = previous if isinstance(previous, dict) else {}
        merged = copy.deepcopy(live)
        for key, value in desired.items():
            merged[key] = _merge(live.get(key), value, previous.get(key))
        for key in previous:
            if key not in desired:
                merged.pop(key, None)
        return merged
    if isinstance(desired, list) and isinstance(live, list):
        return _merge_list(live, desired, previous)
    return copy.deepcopy(desired)


def _encode_string_data(desired: Dict[str, Any]) -> Dict[str, Any]:
    """The API server folds Secret stringData into data; do the same up front."""
    string_data = desired.pop("stringData", None) or {}
    if string_data:
        data = dict(desired.get("data") or {})
        for key, value in string_data.items():
            data[key] = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        desired["data"] = data
    return desired


def _previous_apply(annotations: Dict[str, Any]) -> Dict[str, Any]:
    text = annotations.get(LAST_APPLIED)
    if not text:
        return {}
    try:
        previous = json.loads(text)
    except ValueError:
        logger.warning(f"Ignoring unreadable {LAST_APPLIED} annotation")
        return {}
    return previous if isinstance(previous, dict) else {}


def manifest_mutation(desired: Dict[str, Any]) -> Mutation:
    """
    Returns a mutation that makes the live object match the manifest.

    The manifest is merged into the live object instead of replacing its
    fields, so values the API server fills in (defaults, resourceVersion,
    and so on) are left alone and re-applying an unchanged manifest is a
    no-op. The applied fields are recorded in the LAST_APPLIED annotation;
    on the next apply, anything recorded there but missing from the
    manifest is removed.
    """
    desired = copy.deepcopy(desired)
    folds_string_data = desired.get("kind") == "Secret" and "stringData" in desired
    if folds_string_data:
        desired = _encode_string_data(desired)
    desired_meta = desired.get("metadata") or {}
    fields = {k: v for k, v in desired.items() if k not in UNMANAGED_FIELDS}

    record: Dict[str, Any] = dict(fields)
    record_meta = {}
    for key in ("labels", "annotations"):
        values = {k: v for k, v in (desired_meta.get(key) or {}).items() if k != LAST_APPLIED}
        if values:
            record_meta[key] = values
    if record_meta:
        record["metadata"] = record_meta
    record_text = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)

    def mutate(obj: Dict[str, Any]):
        metadata = obj.setdefault("metadata", {})
        if folds_string_data:
            obj.pop("stringData", None)
        previous = _previous_apply(metadata.get("annotations") or {})
        previous_meta = previous.get("metadata") or {}

        for key in ("labels", "annotations"):
            merged = _merge(metadata.get(key) or {}, record_meta.get(key, {}), previous_meta.get(key))
            if merged:
                metadata[key] = merged
            else:
                metadata.pop(key, None)
        metadata.setdefault("annotations", {})[LAST_APPLIED] = record_text

        for key, value in fields.items():
            obj[key] = _merge(obj.get(key), value, previous.get(key))
        for key in previous:
            if key != "metadata" and key not in fields:
                obj.pop(key, None)
    return mutate


class ManifestLoader:
    """Reads manifests and produces TrackedObjects in document order."""

    def __init__(self, default_namespace: Optional[str] = None):
        self.default_namespace = default_namespace
        self.validator = KubeValidator()
        self.yaml = YAML(typ='safe')

    def load_file(self, path: Union[str, Path]) -> List[TrackedObject]:
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8-sig')
        except OSError as e:
            raise ManifestError(f"Cannot read manifest {path}: {e}") from e
        return self.load(text)

    def load(self, text: str) -> List[TrackedObject]:
        """
        Parses every document. Invalid documents are kept as tracked
        objects that fail on apply; a file that is not YAML at all raises
        ManifestError.
        """
        try:
            docs = [d for d in self.yaml.load_all(text) if d is not None]
        except YAMLError as e:
            raise ManifestError(f"Manifest is not valid YAML: {e}") from e

        tracked: List[TrackedObject] = []
        seen = set()
        for index, doc in enumerate(docs):
            ok, message = self.validator.validate(doc)
            if not ok:
                label = KubeValidator.describe(doc)
                logger.warning(f"Document {index} ({label}) rejected: {message}")
                tracked.append(self._failing(doc, index, ManifestError(f"document {index}: {message}")))
                continue

            doc = self._with_namespace(doc)
            ref = self._ref_for(doc)
            if ref in seen:
                logger.warning(f"Document {index} duplicates {ref}")
                tracked.append(self._failing(doc, index, ManifestError(f"document {index}: duplicate object {ref}")))
                continue

            seen.add(ref)
            tracked.append(TrackedObject(ref=ref, mutate=manifest_mutation(doc), desired=doc))
        return tracked

    def _with_namespace(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        if doc["kind"] in CLUSTER_SCOPED or not self.default_namespace:
            return doc
        if "namespace" not in doc["metadata"]:
            doc = copy.deepcopy(doc)
            doc["metadata"]["namespace"] = self.default_namespace
        return doc

    @staticmethod
    def _ref_for(doc: Dict[str, Any]) -> ObjectRef:
        metadata = doc["metadata"]
        namespace = None if doc["kind"] in CLUSTER_SCOPED else metadata.get("namespace")
        return ObjectRef(api_version=doc["apiVersion"], kind=doc["kind"],
                         name=metadata["name"], namespace=namespace)

    @staticmethod
    def _failing(doc: Any, index: int, error: ManifestError) -> TrackedObject:
        """
        A tracked object that fails on apply. The ref keeps the document's
        own name and carries its position to stay unique in the batch.
        """
        doc = doc if isinstance(doc, dict) else {}
        metadata = doc.get("metadata") if isinstance(doc.get("metadata"), dict) else {}
        name = metadata.get("name") if isinstance(metadata.get("name"), str) else "unnamed"
        kind = doc.get("kind") if isinstance(doc.get("kind"), str) else "Unknown"
        api_version = doc.get("apiVersion") if isinstance(doc.get("apiVersion"), str) else ""
        ref = ObjectRef(api_version=api_version, kind=kind, name=name, document=index)
        return TrackedObject(ref=ref, mutate=err_func(error))
