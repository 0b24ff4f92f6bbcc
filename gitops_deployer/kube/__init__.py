"""Kubernetes read surfaces: direct client and informer caches."""

from .client import GVR_POD, KubeClient
from .informer import InformerFactory, ResourceInformer
from .selectors import labels_match, make_label_selector

__all__ = [
    "GVR_POD",
    "KubeClient",
    "InformerFactory",
    "ResourceInformer",
    "labels_match",
    "make_label_selector",
]
