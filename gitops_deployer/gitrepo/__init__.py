"""Git configuration facade over per-cluster gitops repositories."""

from .cluster_repo import ClusterGitRepo, EnvValue, GitClusterRepo, RepoInfo

__all__ = ["ClusterGitRepo", "EnvValue", "GitClusterRepo", "RepoInfo"]
