"""Argo CD REST client and the per-environment client factory."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests

from ..common.errors import RESOURCE_ARGOCD, NotFoundError, UpstreamError
from ..core.config import ArgoCDSettings
from .params import CreateClusterParams, DeployClusterParams

logger = logging.getLogger(__name__)


class ArgoCDClient:
    """Manage one Argo CD Application per cluster through the Argo CD API server."""

    APPLICATIONS_ENDPOINT = "api/v1/applications"
    SYNC_ENDPOINT = "api/v1/applications/{name}/sync"

    def __init__(
        self,
        settings: ArgoCDSettings,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.base_url = settings.url
        self.request_timeout = settings.timeout
        self.session = session or requests.Session()
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        self.session.headers.update(headers)
        self.session.verify = settings.verify_ssl

    def build_application(self, params: CreateClusterParams) -> Dict[str, Any]:
        """Render the Argo CD Application manifest for a cluster."""
        return {
            "metadata": {
                "name": params.cluster,
                "namespace": self.settings.namespace,
                "labels": {"environment": params.environment, "region": params.region_entity.name},
                "finalizers": ["resources-finalizer.argocd.argoproj.io"],
            },
            "spec": {
                "project": self.settings.project,
                "source": {
                    "repoURL": params.git_repo_url,
                    "path": ".",
                    "targetRevision": "HEAD",
                    "helm": {"valueFiles": list(params.value_files)},
                },
                "destination": {
                    "server": params.region_entity.server,
                    "namespace": params.namespace,
                },
            },
        }

    def create_application(self, params: CreateClusterParams) -> None:
        """Create or update the cluster's Application. Safe to repeat."""
        url = f"{self.base_url}/{self.APPLICATIONS_ENDPOINT}"
        body = self.build_application(params)
        logger.info("Upserting Argo CD application %s (repo %s)", params.cluster, params.git_repo_url)
        self._post(url, f"create application {params.cluster}", json=body, params={"upsert": "true"})

    def sync_application(self, name: str, revision: str) -> None:
        """Sync the Application to ``revision``."""
        url = f"{self.base_url}/{self.SYNC_ENDPOINT.format(name=name)}"
        body = {"revision": revision, "prune": True}
        logger.info("Syncing Argo CD application %s to revision %s", name, revision)
        self._post(url, f"sync application {name}", json=body)

    def _post(self, url: str, action: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.session.post(url, timeout=self.request_timeout, **kwargs)
        except requests.RequestException as exc:
            raise UpstreamError(f"{action}: {exc}", resource=RESOURCE_ARGOCD) from exc
        self._raise_for_status(response, action)
        return response.json() if response.content else {}

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str) -> None:
        if response.status_code == 404:
            raise NotFoundError(f"{action}: {response.text}", resource=RESOURCE_ARGOCD)
        if response.status_code >= 400:
            raise UpstreamError(
                f"{action} failed with status {response.status_code}: {response.text}",
                resource=RESOURCE_ARGOCD,
            )


class ArgoCDFactory:
    """One Argo CD client per environment, built once from configuration."""

    def __init__(self, clients: Mapping[str, ArgoCDClient]) -> None:
        self._clients = dict(clients)

    @classmethod
    def from_settings(
        cls,
        settings: Mapping[str, ArgoCDSettings],
        *,
        session_factory=requests.Session,
    ) -> "ArgoCDFactory":
        return cls({env: ArgoCDClient(cfg, session=session_factory()) for env, cfg in settings.items()})

    def get(self, environment: str) -> ArgoCDClient:
        client = self._clients.get(environment)
        if client is None:
            raise NotFoundError(f"no argocd configured for environment = {environment}", resource=RESOURCE_ARGOCD)
        return client

    def create_cluster(self, params: CreateClusterParams) -> None:
        self.get(params.environment).create_application(params)

    def deploy_cluster(self, params: DeployClusterParams) -> None:
        self.get(params.environment).sync_application(params.cluster, params.revision)
