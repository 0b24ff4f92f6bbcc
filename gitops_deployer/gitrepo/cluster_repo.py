"""Cluster configuration repositories: one git working copy per cluster."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import yaml
from git import Actor, Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..common.errors import RESOURCE_GIT_REPO, InvalidArgumentError, NotFoundError, UpstreamError
from ..common.gitops import (
    GITOPS_ENV_VALUE_NAMESPACE,
    GITOPS_FILE_ENV,
    GITOPS_FILE_PIPELINE_OUTPUT,
    GITOPS_VALUE_FILES,
)
from ..core.config import GitOpsSettings


@dataclass(slots=True)
class RepoInfo:
    """Where the CD backend pulls a cluster's configuration from."""

    git_repo_url: str
    value_files: List[str] = field(default_factory=list)


@dataclass(slots=True)
class EnvValue:
    """Environment values the template renders with, from ``system/env.yaml``."""

    environment: str = ""
    region: str = ""
    namespace: str = ""
    base_registry: str = ""


def _output_as_dict(output: Any) -> Dict[str, Any]:
    """Normalize a pipeline output payload (mapping or YAML/JSON text) into a dict."""
    if isinstance(output, dict):
        return output
    if isinstance(output, (str, bytes)):
        try:
            loaded = yaml.safe_load(output) or {}
        except yaml.YAMLError as exc:
            raise InvalidArgumentError(f"pipeline output is not valid YAML: {exc}") from exc
        if isinstance(loaded, dict):
            return loaded
    raise InvalidArgumentError(f"pipeline output must be a mapping, got {type(output).__name__}")


class ClusterGitRepo(Protocol):
    """Git operations the deploy pipeline performs on a cluster's configuration."""

    def update_pipeline_output(self, application: str, cluster: str, chart: str, output: Any) -> str:
        ...

    def merge_branch(self, application: str, cluster: str, pipelinerun_id: int) -> str:
        ...

    def get_env_value(self, application: str, cluster: str, chart: str) -> EnvValue:
        ...

    def get_repo_info(self, application: str, cluster: str) -> RepoInfo:
        ...


class GitClusterRepo:
    """
    Cluster configuration kept in local git working copies.

    Each cluster lives at ``<repo_root>/<application>/<cluster>``. Changes are
    committed to the working branch and promoted by merging it into the stable
    branch, which is what the CD backend deploys.
    """

    def __init__(self, settings: GitOpsSettings, logger: Optional[logging.Logger] = None) -> None:
        self.settings = settings
        self.root = Path(settings.repo_root)
        self.logger = logger or logging.getLogger(__name__)
        self.actor = Actor(settings.author_name, settings.author_email)

    def repo_path(self, application: str, cluster: str) -> Path:
        return self.root / application / cluster

    def update_pipeline_output(self, application: str, cluster: str, chart: str, output: Any) -> str:
        """
        Write the pipeline output under ``chart`` to the working branch.

        Args:
            application: Application name
            cluster: Cluster name
            chart: Chart name the values are scoped to
            output: Pipeline output payload (image, git commit, ...)

        Returns:
            Commit id of the working branch head
        """
        repo = self._open(application, cluster)
        content = yaml.safe_dump({chart: _output_as_dict(output)}, default_flow_style=False, sort_keys=True)
        working = self.settings.working_branch
        try:
            self._checkout(repo, working)
            file_path = Path(repo.working_tree_dir) / GITOPS_FILE_PIPELINE_OUTPUT
            if file_path.exists() and file_path.read_text(encoding="utf-8") == content:
                self.logger.info("Pipeline output of %s/%s unchanged, keeping %s", application, cluster, working)
                return repo.heads[working].commit.hexsha

            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
            repo.index.add([GITOPS_FILE_PIPELINE_OUTPUT])
            commit = repo.index.commit(
                f"deploy: update {GITOPS_FILE_PIPELINE_OUTPUT} of {cluster}",
                author=self.actor,
                committer=self.actor,
            )
            self._push(repo, working)
        except GitCommandError as exc:
            raise UpstreamError(
                f"failed to update pipeline output of {application}/{cluster}: {exc}",
                resource=RESOURCE_GIT_REPO,
            ) from exc

        self.logger.info("Committed pipeline output of %s/%s as %s", application, cluster, commit.hexsha)
        return commit.hexsha

    def merge_branch(self, application: str, cluster: str, pipelinerun_id: int) -> str:
        """Merge the working branch into the stable branch and return the stable head."""
        repo = self._open(application, cluster)
        working, stable = self.settings.working_branch, self.settings.stable_branch
        if working not in repo.heads:
            raise NotFoundError(f"branch {working} of {application}/{cluster} not found", resource=RESOURCE_GIT_REPO)

        message = f"git merge {working} into {stable} by pipelinerun {pipelinerun_id}"
        env = {
            "GIT_AUTHOR_NAME": self.actor.name,
            "GIT_AUTHOR_EMAIL": self.actor.email,
            "GIT_COMMITTER_NAME": self.actor.name,
            "GIT_COMMITTER_EMAIL": self.actor.email,
        }
        try:
            self._checkout(repo, stable)
            with repo.git.custom_environment(**env):
                repo.git.merge(working, "--no-ff", "-m", message)
            self._push(repo, stable)
        except GitCommandError as exc:
            self._abort_merge(repo)
            raise UpstreamError(
                f"failed to merge {working} into {stable} for {application}/{cluster}: {exc}",
                resource=RESOURCE_GIT_REPO,
            ) from exc

        revision = repo.heads[stable].commit.hexsha
        self.logger.info("Merged %s into %s for %s/%s at %s", working, stable, application, cluster, revision)
        return revision

    def get_env_value(self, application: str, cluster: str, chart: str) -> EnvValue:
        repo = self._open(application, cluster)
        branch = self.settings.working_branch
        if branch not in repo.heads:
            branch = self.settings.stable_branch
        raw = self._read_file(repo, branch, GITOPS_FILE_ENV)
        if raw is None:
            raise NotFoundError(f"{GITOPS_FILE_ENV} of {application}/{cluster} not found", resource=RESOURCE_GIT_REPO)

        data = yaml.safe_load(raw) or {}
        values = (data.get(chart) or {}).get(GITOPS_ENV_VALUE_NAMESPACE)
        if not isinstance(values, dict):
            raise NotFoundError(
                f"env values of chart {chart} not found in {application}/{cluster}",
                resource=RESOURCE_GIT_REPO,
            )
        return EnvValue(
            environment=str(values.get("environment", "")),
            region=str(values.get("region", "")),
            namespace=str(values.get("namespace", "")),
            base_registry=str(values.get("baseRegistry", "")),
        )

    def get_repo_info(self, application: str, cluster: str) -> RepoInfo:
        repo = self._open(application, cluster)
        if "origin" in [remote.name for remote in repo.remotes]:
            url = repo.remote("origin").url
        else:
            url = str(self.repo_path(application, cluster).resolve())

        stable = self.settings.stable_branch
        value_files = [
            path for path in GITOPS_VALUE_FILES
            if stable not in repo.heads or self._read_file(repo, stable, path) is not None
        ]
        return RepoInfo(git_repo_url=url, value_files=value_files)

    def _open(self, application: str, cluster: str) -> Repo:
        path = self.repo_path(application, cluster)
        try:
            return Repo(path)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise NotFoundError(
                f"git repo of cluster {application}/{cluster} not found at {path}",
                resource=RESOURCE_GIT_REPO,
            ) from exc

    def _checkout(self, repo: Repo, branch: str) -> None:
        if branch not in repo.heads:
            stable = self.settings.stable_branch
            if stable not in repo.heads:
                raise NotFoundError(f"branch {stable} not found in {repo.working_tree_dir}", resource=RESOURCE_GIT_REPO)
            self.logger.debug("Creating branch %s from %s", branch, stable)
            repo.create_head(branch, repo.heads[stable].commit)
        if repo.head.is_detached or repo.active_branch.name != branch:
            repo.heads[branch].checkout()

    def _push(self, repo: Repo, branch: str) -> None:
        if not self.settings.push or "origin" not in [remote.name for remote in repo.remotes]:
            return
        self.logger.debug("Pushing %s to origin", branch)
        repo.remote("origin").push(branch).raise_if_error()

    def _abort_merge(self, repo: Repo) -> None:
        try:
            repo.git.merge("--abort")
        except GitCommandError:
            self.logger.debug("No merge in progress in %s", repo.working_tree_dir)

    @staticmethod
    def _read_file(repo: Repo, branch: str, path: str) -> Optional[str]:
        try:
            blob = repo.heads[branch].commit.tree / path
        except (IndexError, KeyError):
            return None
        return blob.data_stream.read().decode("utf-8")
