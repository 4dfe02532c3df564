# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
lp4kcm: print the table stored in one or more nodeclaim ConfigMaps.

Usage:
    lp4kcm karpenter-nodeclaims-cm
    lp4kcm --namespace karpenter cm-a cm-b
"""

import argparse
import logging
import os
import sys

from .config import ConfigurationError, load_settings, setup_logging
from .errors import KubectlError
from .exporter import restore_snapshot, write_table
from .kubectl import KubectlClient
from .registry import NodeclaimRegistry

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error(str(e))
        raise SystemExit(2) from e

    parser = argparse.ArgumentParser(
        prog="lp4kcm",
        description="Print nodeclaim ConfigMaps written by lp4k as one table",
    )
    parser.add_argument(
        "configmaps",
        nargs="*",
        metavar="NAME",
        default=[settings.CONFIGMAP_NAME],
        help=f"ConfigMap names, merged in order (default: {settings.CONFIGMAP_NAME})",
    )
    parser.add_argument(
        "--kubeconfig",
        default=os.environ.get("KUBECONFIG", os.path.join(os.path.expanduser("~"), ".kube", "config")),
        help="kubeconfig file (env: KUBECONFIG, default: ~/.kube/config)",
    )
    parser.add_argument(
        "--namespace",
        default=settings.NAMESPACE,
        help=f"ConfigMap namespace (env: KARPENTER_NAMESPACE, default: {settings.NAMESPACE})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)
    setup_logging(settings.LOG_LEVEL, verbose=args.verbose)

    kubectl = KubectlClient(
        namespace=args.namespace,
        kubeconfig=args.kubeconfig,
        kubectl=settings.KUBECTL,
        timeout=settings.KUBECTL_TIMEOUT,
    )
    registry = NodeclaimRegistry()
    for name in args.configmaps:
        try:
            data = kubectl.get_configmap(name)
        except KubectlError as e:
            logger.error(f"Cannot read ConfigMap {args.namespace}/{name}: {e}")
            return 1
        if data is None:
            logger.error(f"ConfigMap {args.namespace}/{name} not found")
            return 1
        restore_snapshot(registry, data, source=f"ConfigMap {name}")

    write_table(registry.snapshot())
    return 0


if __name__ == "__main__":
    sys.exit(main())
