"""List-then-watch caches of Kubernetes resources."""
from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from kubernetes.client.rest import ApiException

from ..common.errors import RESOURCE_IN_K8S, NotFoundError
from ..workload.models import GroupVersionResource
from .client import KubeClient
from .selectors import labels_match

_MAX_BACKOFF_SECONDS = 30.0


class _WatchExpired(Exception):
    """The watch resourceVersion is too old; the cache must re-list."""


class ResourceInformer:
    """
    Local cache of one resource type kept current by a background watch.

    Reads never hit the API server. Returned objects are copies, so callers
    may mutate them freely.
    """

    def __init__(
        self,
        kube: KubeClient,
        gvr: GroupVersionResource,
        *,
        resync_seconds: int = 300,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.kube = kube
        self.gvr = gvr
        self.resync_seconds = resync_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._store: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._synced = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._resource_version: Optional[str] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name=f"informer-{self.gvr.resource}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()

    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        return self._synced.wait(timeout)

    def get(self, namespace: str, name: str) -> Dict[str, Any]:
        with self._lock:
            obj = self._store.get((namespace, name))
        if obj is None:
            raise NotFoundError(f"{self.gvr} {namespace}/{name} not found in cache", resource=RESOURCE_IN_K8S)
        return copy.deepcopy(obj)

    def list(self, namespace: Optional[str] = None, labels: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            matches = [
                obj
                for (obj_namespace, _), obj in sorted(self._store.items())
                if (namespace is None or obj_namespace == namespace)
                and labels_match(labels, (obj.get("metadata") or {}).get("labels"))
            ]
        return copy.deepcopy(matches)

    def replace(self, items: List[Dict[str, Any]], resource_version: Optional[str]) -> None:
        """Swap the whole store for a fresh list result."""
        store = {}
        for obj in items:
            key = self._key(obj)
            if key:
                store[key] = obj
        with self._lock:
            self._store = store
            self._resource_version = resource_version
        self._synced.set()
        self.logger.debug("Informer %s synced %d objects at %s", self.gvr, len(store), resource_version)

    def handle_event(self, event_type: str, obj: Dict[str, Any]) -> None:
        """Apply one watch event to the store."""
        if event_type == "ERROR":
            status = obj.get("code")
            if status == 410:
                raise _WatchExpired()
            self.logger.warning("Informer %s received watch error: %s", self.gvr, obj.get("message"))
            return
        if event_type == "BOOKMARK":
            self._resource_version = (obj.get("metadata") or {}).get("resourceVersion") or self._resource_version
            return

        key = self._key(obj)
        if not key:
            return
        with self._lock:
            if event_type == "DELETED":
                self._store.pop(key, None)
            else:
                self._store[key] = obj
            self._resource_version = (obj.get("metadata") or {}).get("resourceVersion") or self._resource_version

    def _run(self) -> None:
        backoff = 1.0
        while not self._stopped.is_set():
            try:
                items, resource_version = self.kube.list(self.gvr)
                self.replace(items, resource_version)
                self._watch()
                backoff = 1.0
            except _WatchExpired:
                self.logger.debug("Watch on %s expired, re-listing", self.gvr)
            except ApiException as exc:
                if exc.status == 410:
                    self.logger.debug("Watch on %s expired, re-listing", self.gvr)
                    continue
                self.logger.warning("Watch on %s failed: %s %s", self.gvr, exc.status, exc.reason)
                self._stopped.wait(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF_SECONDS)
            except Exception as exc:  # keep the cache thread alive
                self.logger.error("Informer %s failed: %s", self.gvr, exc, exc_info=True)
                self._stopped.wait(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF_SECONDS)

    def _watch(self) -> None:
        while not self._stopped.is_set():
            events = self.kube.watch(
                self.gvr,
                resource_version=self._resource_version,
                timeout_seconds=self.resync_seconds,
            )
            for event_type, obj in events:
                self.handle_event(event_type, obj)
                if self._stopped.is_set():
                    return

    @staticmethod
    def _key(obj: Mapping[str, Any]) -> Optional[Tuple[str, str]]:
        metadata = obj.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            return None
        return metadata.get("namespace") or "", name


class InformerFactory:
    """Shared informers, one per resource, created on first use."""

    def __init__(
        self,
        kube: KubeClient,
        *,
        resync_seconds: int = 300,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.kube = kube
        self.resync_seconds = resync_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._informers: Dict[GroupVersionResource, ResourceInformer] = {}
        self._lock = threading.Lock()
        self._started = False

    def for_resource(self, gvr: GroupVersionResource) -> ResourceInformer:
        with self._lock:
            informer = self._informers.get(gvr)
            if informer is None:
                informer = ResourceInformer(
                    self.kube, gvr, resync_seconds=self.resync_seconds, logger=self.logger
                )
                self._informers[gvr] = informer
                if self._started:
                    informer.start()
            return informer

    def start(self) -> None:
        with self._lock:
            self._started = True
            informers = list(self._informers.values())
        for informer in informers:
            informer.start()

    def wait_for_cache_sync(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            informers = list(self._informers.values())
        return all(informer.wait_for_sync(timeout) for informer in informers)

    def stop(self) -> None:
        with self._lock:
            self._started = False
            informers = list(self._informers.values())
        for informer in informers:
            informer.stop()
