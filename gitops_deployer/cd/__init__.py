"""CD backend facade and the Argo CD client behind it."""

from .argocd import ArgoCDClient, ArgoCDFactory
from .backend import CDBackend, ClusterCD
from .params import CreateClusterParams, DeployClusterParams

__all__ = [
    "ArgoCDClient",
    "ArgoCDFactory",
    "CDBackend",
    "ClusterCD",
    "CreateClusterParams",
    "DeployClusterParams",
]
