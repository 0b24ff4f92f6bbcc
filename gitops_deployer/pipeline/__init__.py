"""Deploy pipeline: the pipelinerun state machine and its collaborators."""

from .deploy import DeployResult, PipelineRunDeployer
from .locks import ClusterLocks

__all__ = ["ClusterLocks", "DeployResult", "PipelineRunDeployer"]
