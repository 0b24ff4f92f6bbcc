"""Configuration models and loader for the deployer."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from ..common.gitops import GITOPS_BRANCH, GITOPS_STABLE_BRANCH


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


class GitOpsSettings(BaseModel):
    """Where cluster configuration repositories live and how commits are signed."""

    repo_root: str = Field(
        default_factory=lambda: os.environ.get("GITOPS_REPO_ROOT", "./gitops"),
        description="Directory holding one working copy per cluster at <root>/<application>/<cluster>.",
    )
    working_branch: str = GITOPS_BRANCH
    stable_branch: str = GITOPS_STABLE_BRANCH
    author_name: str = Field(default_factory=lambda: os.environ.get("GITOPS_AUTHOR_NAME", "gitops-deployer"))
    author_email: str = Field(
        default_factory=lambda: os.environ.get("GITOPS_AUTHOR_EMAIL", "gitops-deployer@localhost")
    )
    push: bool = Field(
        default_factory=lambda: _env_flag("GITOPS_PUSH"),
        description="Push working and stable branches to 'origin' after each change.",
    )

    @field_validator("working_branch", "stable_branch")
    @classmethod
    def _validate_branch(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Branch name cannot be empty.")
        return value.strip()


class KubeSettings(BaseModel):
    """Connection to the Kubernetes cluster queried for workload state."""

    kubeconfig: Optional[str] = Field(default_factory=lambda: os.environ.get("KUBECONFIG"))
    context: Optional[str] = Field(default_factory=lambda: os.environ.get("KUBE_CONTEXT"))
    in_cluster: bool = Field(default_factory=lambda: _env_flag("KUBE_IN_CLUSTER"))
    request_timeout: int = 10
    resync_seconds: int = Field(default=300, description="Watch timeout before the informer re-lists.")


class ArgoCDSettings(BaseModel):
    """Argo CD instance serving one environment."""

    url: str
    token: str = ""
    namespace: str = "argocd"
    project: str = "default"
    verify_ssl: bool = True
    timeout: int = 30

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("Argo CD url cannot be empty.")
        return value


class DeployerConfig(BaseModel):
    """Top-level configuration."""

    gitops: GitOpsSettings = Field(default_factory=GitOpsSettings)
    kube: KubeSettings = Field(default_factory=KubeSettings)
    argocd: Dict[str, ArgoCDSettings] = Field(
        default_factory=dict,
        description="Argo CD instance per environment name.",
    )
    log_level: str = Field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"),
        validate_default=True,
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level


def load_config(path: Optional[Union[str, Path]] = None) -> DeployerConfig:
    """
    Load configuration from a YAML file, falling back to environment defaults.

    Args:
        path: Optional YAML file. Keys mirror ``DeployerConfig`` fields.

    Returns:
        Validated DeployerConfig
    """
    if path is None:
        return DeployerConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    return DeployerConfig.model_validate(data)
