"""Shared errors, domain records and gitops layout constants."""
