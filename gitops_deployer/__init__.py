"""gitops-deployer: GitOps deploy pipeline and progressive-delivery status for Kubernetes."""
