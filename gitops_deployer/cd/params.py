"""Parameters of cluster lifecycle calls on the CD backend."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ..common.models import RegionEntity


@dataclass(slots=True)
class CreateClusterParams:
    environment: str
    cluster: str
    git_repo_url: str
    region_entity: RegionEntity
    namespace: str
    value_files: List[str] = field(default_factory=list)


@dataclass(slots=True)
class DeployClusterParams:
    environment: str
    cluster: str
    revision: str
