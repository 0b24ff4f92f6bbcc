"""Workload abilities and the progress model they report."""
