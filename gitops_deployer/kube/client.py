"""Direct reads and writes against the Kubernetes API, keyed by group/version/resource."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from ..common.errors import (
    RESOURCE_IN_K8S,
    DeployerError,
    InvalidArgumentError,
    NotFoundError,
    ReadError,
    UpstreamError,
)
from ..core.config import KubeSettings
from ..workload.models import GroupVersionResource
from .selectors import make_label_selector

GVR_POD = GroupVersionResource(group="", version="v1", resource="pods")


class KubeClient:
    """
    Thin wrapper over the Kubernetes Python client returning plain dicts.

    Grouped resources (including custom resources) go through the custom
    objects API; the core group is limited to pods, the only core resource
    workload abilities read.
    """

    def __init__(
        self,
        api_client: Optional[client.ApiClient] = None,
        *,
        request_timeout: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_client = api_client or client.ApiClient()
        self.custom = client.CustomObjectsApi(self.api_client)
        self.core = client.CoreV1Api(self.api_client)
        self.request_timeout = request_timeout
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: KubeSettings, logger: Optional[logging.Logger] = None) -> "KubeClient":
        if settings.in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=settings.kubeconfig, context=settings.context)
        return cls(client.ApiClient(), request_timeout=settings.request_timeout, logger=logger)

    def get(self, gvr: GroupVersionResource, namespace: str, name: str) -> Dict[str, Any]:
        """Read one object. Raises NotFoundError on 404 and ReadError otherwise."""
        self.logger.debug("Getting %s %s/%s", gvr, namespace, name)
        try:
            if not gvr.group:
                self._require_pods(gvr)
                pod = self.core.read_namespaced_pod(name, namespace, _request_timeout=self.request_timeout)
                return self.api_client.sanitize_for_serialization(pod)
            return self.custom.get_namespaced_custom_object(
                gvr.group,
                gvr.version,
                namespace,
                gvr.resource,
                name,
                _request_timeout=self.request_timeout,
            )
        except ApiException as exc:
            raise self._read_error(exc, gvr, f"{namespace}/{name}") from exc

    def list(
        self,
        gvr: GroupVersionResource,
        namespace: Optional[str] = None,
        *,
        label_selector: str = "",
        resource_version: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """List objects, cluster-wide when ``namespace`` is None. Returns items and the list resourceVersion."""
        kwargs: Dict[str, Any] = {"_request_timeout": self.request_timeout}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if resource_version is not None:
            kwargs["resource_version"] = resource_version

        try:
            if not gvr.group:
                self._require_pods(gvr)
                if namespace:
                    result = self.core.list_namespaced_pod(namespace, **kwargs)
                else:
                    result = self.core.list_pod_for_all_namespaces(**kwargs)
                result = self.api_client.sanitize_for_serialization(result)
            elif namespace:
                result = self.custom.list_namespaced_custom_object(
                    gvr.group, gvr.version, namespace, gvr.resource, **kwargs
                )
            else:
                result = self.custom.list_cluster_custom_object(gvr.group, gvr.version, gvr.resource, **kwargs)
        except ApiException as exc:
            raise self._read_error(exc, gvr, namespace or "*") from exc

        items = result.get("items") or []
        list_version = (result.get("metadata") or {}).get("resourceVersion")
        return items, list_version

    def list_pods(self, namespace: str, labels: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """List pods matching ``labels``, served from the API server watch cache."""
        items, _ = self.list(
            GVR_POD,
            namespace,
            label_selector=make_label_selector(labels),
            resource_version="0",
        )
        return items

    def watch(
        self,
        gvr: GroupVersionResource,
        *,
        resource_version: Optional[str],
        timeout_seconds: int,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """
        Stream cluster-wide watch events as ``(type, raw_object)``.

        ApiException is propagated untranslated so callers can re-list on 410.
        """
        watcher = watch.Watch()
        kwargs: Dict[str, Any] = {"timeout_seconds": timeout_seconds}
        if resource_version:
            kwargs["resource_version"] = resource_version
        if not gvr.group:
            self._require_pods(gvr)
            stream = watcher.stream(self.core.list_pod_for_all_namespaces, **kwargs)
        else:
            stream = watcher.stream(
                self.custom.list_cluster_custom_object, gvr.group, gvr.version, gvr.resource, **kwargs
            )
        try:
            for event in stream:
                yield event["type"], event.get("raw_object") or {}
        finally:
            watcher.stop()

    def replace(self, gvr: GroupVersionResource, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a custom object; the body must carry metadata.resourceVersion for optimistic locking."""
        namespace, name = self._identity(obj)
        try:
            return self.custom.replace_namespaced_custom_object(
                gvr.group, gvr.version, namespace, gvr.resource, name, obj,
                _request_timeout=self.request_timeout,
            )
        except ApiException as exc:
            raise self._write_error(exc, gvr, f"{namespace}/{name}") from exc

    def replace_status(self, gvr: GroupVersionResource, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the status subresource of a custom object."""
        namespace, name = self._identity(obj)
        try:
            return self.custom.replace_namespaced_custom_object_status(
                gvr.group, gvr.version, namespace, gvr.resource, name, obj,
                _request_timeout=self.request_timeout,
            )
        except ApiException as exc:
            raise self._write_error(exc, gvr, f"{namespace}/{name}") from exc

    @staticmethod
    def _identity(obj: Dict[str, Any]) -> Tuple[str, str]:
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace")
        name = metadata.get("name")
        if not namespace or not name:
            raise InvalidArgumentError("object metadata must carry namespace and name")
        return namespace, name

    @staticmethod
    def _require_pods(gvr: GroupVersionResource) -> None:
        if gvr.resource != "pods":
            raise InvalidArgumentError(f"unsupported core resource: {gvr.resource}")

    @staticmethod
    def _read_error(exc: ApiException, gvr: GroupVersionResource, subject: str) -> DeployerError:
        if exc.status == 404:
            return NotFoundError(f"{gvr} {subject} not found", resource=RESOURCE_IN_K8S)
        return ReadError(f"failed to read {gvr} {subject}: {exc.status} {exc.reason}", resource=RESOURCE_IN_K8S)

    @staticmethod
    def _write_error(exc: ApiException, gvr: GroupVersionResource, subject: str) -> DeployerError:
        if exc.status == 404:
            return NotFoundError(f"{gvr} {subject} not found", resource=RESOURCE_IN_K8S)
        return UpstreamError(f"failed to update {gvr} {subject}: {exc.status} {exc.reason}", resource=RESOURCE_IN_K8S)
