"""Tests for configuration loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from gitops_deployer.core.config import ArgoCDSettings, DeployerConfig, GitOpsSettings, load_config


def test_defaults_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITOPS_REPO_ROOT", "/srv/gitops")
    monkeypatch.setenv("GITOPS_PUSH", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = load_config()

    assert config.gitops.repo_root == "/srv/gitops"
    assert config.gitops.push is True
    assert config.gitops.working_branch == "gitops"
    assert config.gitops.stable_branch == "master"
    assert config.log_level == "DEBUG"
    assert config.argocd == {}


def test_load_yaml_file(tmp_path: Path) -> None:
    path = tmp_path / "deployer.yaml"
    path.write_text(
        """
gitops:
  repo_root: /data/gitops
  stable_branch: main
kube:
  in_cluster: true
  request_timeout: 5
argocd:
  test:
    url: https://argocd-test.local/
    token: abc
  online:
    url: https://argocd.local
    verify_ssl: false
""",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.gitops.repo_root == "/data/gitops"
    assert config.gitops.stable_branch == "main"
    assert config.kube.in_cluster is True
    assert config.kube.request_timeout == 5
    assert config.argocd["test"].url == "https://argocd-test.local"
    assert config.argocd["online"].verify_ssl is False
    assert config.argocd["online"].namespace == "argocd"


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_non_mapping_root_raises(tmp_path: Path) -> None:
    path = tmp_path / "deployer.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_empty_branch_is_rejected() -> None:
    with pytest.raises(ValidationError):
        GitOpsSettings(stable_branch="  ")


def test_empty_argocd_url_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ArgoCDSettings(url="/")


def test_model_validate_nested_defaults() -> None:
    config = DeployerConfig.model_validate({"argocd": {"dev": {"url": "http://argocd.dev"}}})

    assert config.argocd["dev"].project == "default"
    assert config.kube.resync_seconds == 300


def test_lowercase_log_level_from_environment_is_usable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "info")

    config = load_config()

    assert config.log_level == "INFO"
    assert logging.getLevelName(config.log_level) == logging.INFO


def test_unknown_log_level_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    with pytest.raises(ValidationError):
        load_config()
