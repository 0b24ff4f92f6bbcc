"""Per-cluster mutual exclusion for deploy invocations."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..common.errors import RESOURCE_CLUSTER, ConflictError


class ClusterLocks:
    """
    One lock per cluster id, created on first use and dropped once no caller
    holds or waits on it, so the table only ever covers clusters in flight.

    Usage:
        locks = ClusterLocks()
        with locks.hold(cluster_id, timeout=30):
            deployer.deploy(cluster_id, pipelinerun_id, output)
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._guard = threading.Lock()
        # cluster id -> [lock, callers holding or waiting]
        self._locks: Dict[int, List] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, cluster_id: int) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(cluster_id)
            if entry is None:
                entry = self._locks[cluster_id] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, cluster_id: int) -> None:
        with self._guard:
            entry = self._locks[cluster_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[cluster_id]

    def locked(self, cluster_id: int) -> bool:
        with self._guard:
            entry = self._locks.get(cluster_id)
            return entry is not None and entry[0].locked()

    @contextmanager
    def hold(self, cluster_id: int, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold the cluster's lock; raise ConflictError if it is not free within ``timeout``."""
        lock = self._checkout(cluster_id)
        try:
            acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise ConflictError(
                    f"cluster {cluster_id} is already being deployed",
                    resource=RESOURCE_CLUSTER,
                )
            self.logger.debug("Acquired deploy lock of cluster %s", cluster_id)
            try:
                yield
            finally:
                lock.release()
                self.logger.debug("Released deploy lock of cluster %s", cluster_id)
        finally:
            self._checkin(cluster_id)
