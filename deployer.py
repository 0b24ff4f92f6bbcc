"""Command line access to workload health, steps, pods and operator actions."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from dotenv import load_dotenv

from gitops_deployer.cd import ArgoCDFactory, ClusterCD
from gitops_deployer.common.errors import DeployerError
from gitops_deployer.core.config import DeployerConfig, load_config
from gitops_deployer.kube import InformerFactory, KubeClient
from gitops_deployer.workload.models import WorkloadRef
from gitops_deployer.workload.registry import build_default_registry
from gitops_deployer.workload.rollout import ACTIONS, ROLLOUT_GROUP, ROLLOUT_KIND

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the deployer CLI."""
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )
    logging.getLogger().addHandler(console_handler)
    logging.getLogger().setLevel(level)

    # Set log level for specific loggers to reduce noise
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('kubernetes').setLevel(logging.WARNING)
    logging.getLogger('git').setLevel(logging.WARNING)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Inspect and operate progressive rollouts on a live cluster.")
    parser.add_argument("--config", help="YAML configuration file (defaults come from the environment).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("health", "Report whether the workload runs its declared template."),
        ("steps", "Report canary step progress."),
        ("pods", "List pods owned by the workload."),
        ("action", "Apply an operator action to the workload."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("name", help="Workload name.")
        sub.add_argument("-n", "--namespace", default="default", help="Workload namespace (default: default).")
        sub.add_argument("--group", default=ROLLOUT_GROUP, help=f"API group (default: {ROLLOUT_GROUP}).")
        sub.add_argument("--version", default="v1alpha1", help="API version (default: v1alpha1).")
        sub.add_argument("--kind", default=ROLLOUT_KIND, help=f"Kind (default: {ROLLOUT_KIND}).")
        if name == "action":
            sub.add_argument("action", choices=sorted(ACTIONS), help="Action to apply.")
        if name == "pods":
            sub.add_argument("--sync-timeout", type=float, default=30.0, help="Seconds to wait for caches.")
    return parser.parse_args(argv)


def build_cluster_cd(config: DeployerConfig) -> ClusterCD:
    """Wire the registry, Kubernetes read surfaces and Argo CD clients together."""
    kube = KubeClient.from_settings(config.kube)
    return ClusterCD(
        registry=build_default_registry(),
        kube=kube,
        informers=InformerFactory(kube, resync_seconds=config.kube.resync_seconds),
        argocd=ArgoCDFactory.from_settings(config.argocd),
    )


def run(args: argparse.Namespace, cd: ClusterCD) -> Any:
    ref = WorkloadRef(
        namespace=args.namespace,
        name=args.name,
        version=args.version,
        kind=args.kind,
        group=args.group,
    )
    if args.command == "health":
        result = cd.is_healthy(ref)
        return {
            "healthy": result.healthy,
            "error": str(result.error) if result.error else None,
            "details": result.details,
        }
    if args.command == "steps":
        return cd.get_steps(ref).to_dict()
    if args.command == "pods":
        cd.warm_up(args.sync_timeout)
        try:
            return [pod.get("metadata", {}).get("name") for pod in cd.list_pods(ref)]
        finally:
            cd.informers.stop()
    return cd.execute_action(ref, args.action)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the deployer CLI."""
    load_dotenv()
    args = parse_args(argv if argv is not None else sys.argv[1:])

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        output = run(args, build_cluster_cd(config))
    except DeployerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        # caller mistakes exit like usage errors
        return 2 if exc.is_client_error() else 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
