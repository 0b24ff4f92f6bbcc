"""Error taxonomy shared by the workload, git, CD and pipeline layers."""
from __future__ import annotations

from typing import Optional


class DeployerError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to."""

    code = "DEPLOYER_ERROR"
    http_status = 500

    def __init__(self, message: str, *, resource: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource

    def with_context(self, op: str) -> "DeployerError":
        """Return an error of the same type with ``op`` prepended to the message."""
        wrapped = type(self)(f"{op}: {self.message}", resource=self.resource)
        wrapped.__cause__ = self
        return wrapped

    def is_client_error(self) -> bool:
        return 400 <= self.http_status < 500

    def __str__(self) -> str:
        if self.resource:
            return f"[{self.code}] {self.resource}: {self.message}"
        return f"[{self.code}] {self.message}"


class NotFoundError(DeployerError):
    """A pipelinerun, cluster, application, template, region or k8s object is missing."""

    code = "NOT_FOUND"
    http_status = 404


class InvalidArgumentError(DeployerError):
    """Unsupported action name, malformed object or failed conversion."""

    code = "INVALID_ARGUMENT"
    http_status = 400


class ConflictError(DeployerError):
    """Another deploy already holds the cluster."""

    code = "CONFLICT"
    http_status = 409


class UpstreamError(DeployerError):
    """The Git configuration repository or the CD backend call failed."""

    code = "UPSTREAM_FAILURE"
    http_status = 502


class ReadError(DeployerError):
    """A Kubernetes get or list failed."""

    code = "READ_FAILURE"
    http_status = 500


# Resource names used in error messages
RESOURCE_PIPELINERUN = "pipelinerun"
RESOURCE_CLUSTER = "cluster"
RESOURCE_APPLICATION = "application"
RESOURCE_TEMPLATE_RELEASE = "template release"
RESOURCE_REGION = "region"
RESOURCE_IN_K8S = "resource in k8s"
RESOURCE_GIT_REPO = "cluster git repo"
RESOURCE_ARGOCD = "argocd"
