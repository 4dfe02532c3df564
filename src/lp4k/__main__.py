# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
CLI entry point for lp4k.

Usage:
    lp4k karpenter-1.log karpenter-2.log   # parse files in order
    kubectl logs -n karpenter POD | lp4k    # parse standard input
    lp4k --kubeconfig ~/.kube/config        # follow the live cluster
"""

import argparse
import logging
import os
import sys

from .config import ConfigurationError, load_settings, setup_logging
from .exporter import write_table
from .ingest import LogParser
from .kubectl import KubectlClient
from .monitor import NodeclaimMonitor
from .registry import NodeclaimRegistry
from .stats import format_stats_summary, get_stats_dict

logger = logging.getLogger(__name__)


def build_parser(settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lp4k",
        description="Reconstruct Karpenter nodeclaim lifecycles from controller logs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes:
  With FILE arguments, every file is parsed in the order given and the
  table is printed once. Without arguments and with piped standard input,
  standard input is parsed until EOF. Otherwise the Karpenter pods are
  followed live and the nodeclaim ConfigMap is refreshed periodically.

Examples:
  %(prog)s karpenter-1.log karpenter-2.log > nodeclaims.csv
  kubectl logs -n karpenter -l app.kubernetes.io/name=karpenter | %(prog)s
  KARPENTER_CM_UPDATE_FREQ=1m %(prog)s --kubeconfig ~/.kube/config --port 8100
        """,
    )
    parser.add_argument("files", nargs="*", metavar="FILE", help="Karpenter log files, parsed in order")
    parser.add_argument(
        "--kubeconfig",
        default=os.environ.get("KUBECONFIG", os.path.join(os.path.expanduser("~"), ".kube", "config")),
        help="kubeconfig for live mode (env: KUBECONFIG, default: ~/.kube/config)",
    )
    parser.add_argument(
        "--namespace",
        default=settings.NAMESPACE,
        help=f"Karpenter namespace (env: KARPENTER_NAMESPACE, default: {settings.NAMESPACE})",
    )
    parser.add_argument(
        "--label",
        default=settings.LABEL,
        help=f"Karpenter pod label selector (env: KARPENTER_LABEL, default: {settings.LABEL})",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.update_interval.total_seconds(),
        help=(
            "ConfigMap update interval in seconds "
            f"(env: KARPENTER_CM_UPDATE_FREQ, default: {settings.CM_UPDATE_FREQ})"
        ),
    )
    parser.add_argument(
        "--configmap",
        default=settings.CONFIGMAP_NAME,
        help=f"Nodeclaim ConfigMap name (env: LP4K_CONFIGMAP_NAME, default: {settings.CONFIGMAP_NAME})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port for the status server (env: LP4K_PORT, disabled if not set)",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Load the existing ConfigMap before following the pods",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging (env: LP4K_LOG_LEVEL=DEBUG)",
    )
    return parser


def run_files(paths: list[str], registry: NodeclaimRegistry) -> int:
    parser = LogParser(registry)
    for path in paths:
        logger.info(f"Parsing file {path}")
        try:
            result = parser.parse_file(path)
        except OSError as e:
            logger.error(f"Cannot read {path}: {e}")
            return 1
        logger.info(f"Finished {path}: {result.lines} lines, {result.applied} events applied")
    write_table(registry.snapshot())
    logger.info(format_stats_summary(get_stats_dict(registry)))
    return 0


def run_stdin(registry: NodeclaimRegistry) -> int:
    logger.info("Reading Karpenter logs from STDIN, type Ctrl-C to end")
    result = LogParser(registry).parse_stdin(sys.stdin)
    logger.info(f"Finished STDIN: {result.lines} lines, {result.applied} events applied")
    write_table(registry.snapshot())
    logger.info(format_stats_summary(get_stats_dict(registry)))
    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(str(e))
        raise SystemExit(2) from e

    args = build_parser(settings).parse_args(argv)
    setup_logging(settings.LOG_LEVEL, verbose=args.verbose)

    registry = NodeclaimRegistry()
    if args.files:
        return run_files(args.files, registry)
    if not sys.stdin.isatty():
        return run_stdin(registry)

    if args.interval <= 0:
        logger.error(f"--interval must be positive, got {args.interval}")
        return 2
    kubectl = KubectlClient(
        namespace=args.namespace,
        kubeconfig=args.kubeconfig,
        kubectl=settings.KUBECTL,
        timeout=settings.KUBECTL_TIMEOUT,
    )
    if not kubectl.check_available():
        logger.error(f"{settings.KUBECTL} is not available, cannot follow the cluster")
        return 1
    with NodeclaimMonitor(
        kubectl=kubectl,
        label=args.label,
        configmap_name=args.configmap,
        update_interval=args.interval,
        port=args.port,
        resume=args.resume,
        registry=registry,
    ) as monitor:
        return monitor.run()


if __name__ == "__main__":
    sys.exit(main())
