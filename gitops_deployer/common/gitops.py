"""Layout of a cluster's gitops configuration repository."""

# File names
GITOPS_FILE_APPLICATION = "application.yaml"
GITOPS_FILE_TAGS = "tags.yaml"
GITOPS_FILE_SRE = "sre/sre.yaml"
GITOPS_FILE_BASE = "system/horizon.yaml"
GITOPS_FILE_ENV = "system/env.yaml"
GITOPS_FILE_RESTART = "system/restart.yaml"
GITOPS_FILE_PIPELINE_OUTPUT = "pipeline/pipeline-output.yaml"

# Value files handed to the CD backend, in the order they are layered
GITOPS_VALUE_FILES = (
    GITOPS_FILE_APPLICATION,
    GITOPS_FILE_PIPELINE_OUTPUT,
    GITOPS_FILE_ENV,
    GITOPS_FILE_BASE,
    GITOPS_FILE_SRE,
    GITOPS_FILE_TAGS,
    GITOPS_FILE_RESTART,
)

# Value namespaces
GITOPS_ENV_VALUE_NAMESPACE = "env"

# Branches
GITOPS_BRANCH = "gitops"
GITOPS_STABLE_BRANCH = "master"
