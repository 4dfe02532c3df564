# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""kubectl subprocess interactions: Karpenter pods, pod log streams, ConfigMaps."""

import json
import logging
import subprocess
from dataclasses import dataclass

from .config import DEFAULT_KUBECTL_TIMEOUT
from .errors import KubectlError

logger = logging.getLogger(__name__)


@dataclass
class KubectlStats:
    """Statistics counters for kubectl operations."""

    calls: int = 0
    failures: int = 0
    streams_started: int = 0


class KubectlClient:
    """
    Client for kubectl subprocess calls scoped to one namespace.

    Non-streaming calls are bounded by a timeout; log streams run until the
    caller terminates them.
    """

    def __init__(
        self,
        namespace: str,
        kubeconfig: str | None = None,
        kubectl: str = "kubectl",
        timeout: float = DEFAULT_KUBECTL_TIMEOUT,
    ):
        """
        Initialize kubectl client.

        Args:
            namespace: Namespace for every call (Karpenter namespace)
            kubeconfig: Path to the kubeconfig file (None = kubectl default)
            kubectl: kubectl binary name or path
            timeout: Timeout for non-streaming calls in seconds
        """
        self.namespace = namespace
        self.kubeconfig = kubeconfig
        self.kubectl = kubectl
        self.timeout = timeout
        self.stats = KubectlStats()

    def _base_cmd(self) -> list[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        cmd.extend(["--namespace", self.namespace])
        return cmd

    def _run(self, args: list[str], input_text: str | None = None) -> subprocess.CompletedProcess:
        cmd = self._base_cmd() + args
        self.stats.calls += 1
        try:
            return subprocess.run(
                cmd,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            self.stats.failures += 1
            raise KubectlError(cmd, f"timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            self.stats.failures += 1
            raise KubectlError(cmd, f"{self.kubectl} command not found") from e

    def _check(self, result: subprocess.CompletedProcess) -> str:
        if result.returncode != 0:
            self.stats.failures += 1
            raise KubectlError(result.args, f"rc={result.returncode}: {result.stderr.strip()[:200]}")
        return result.stdout

    def check_available(self) -> bool:
        """
        Check if kubectl is installed and runnable.

        Returns:
            True if `kubectl version --client` succeeds, False otherwise.
        """
        try:
            result = subprocess.run(
                [self.kubectl, "version", "--client"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            return result.returncode == 0
        except FileNotFoundError:
            return False
        except subprocess.TimeoutExpired as e:
            logger.error(f"kubectl health check timed out after {e.timeout}s")
            return False

    def list_pods(self, label: str) -> list[str]:
        """
        Names of the pods matching a label selector.

        Raises:
            KubectlError: If kubectl fails
        """
        result = self._run(
            ["get", "pods", "--selector", label, "--output", "jsonpath={.items[*].metadata.name}"]
        )
        return self._check(result).split()

    def stream_logs(self, pod: str) -> subprocess.Popen:
        """
        Start following a pod's log.

        The caller owns the returned process: iterate its stdout for lines
        and terminate() it to stop streaming.

        Raises:
            KubectlError: If kubectl cannot be started
        """
        cmd = self._base_cmd() + ["logs", "--follow", pod]
        self.stats.calls += 1
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            self.stats.failures += 1
            raise KubectlError(cmd, str(e)) from e
        self.stats.streams_started += 1
        logger.debug(f"Started log stream for pod {pod} (pid {process.pid})")
        return process

    def get_configmap(self, name: str) -> dict[str, str] | None:
        """
        Data of a ConfigMap, or None if it does not exist.

        Raises:
            KubectlError: If kubectl fails for any other reason
        """
        result = self._run(["get", "configmap", name, "--output", "json"])
        if result.returncode != 0 and "NotFound" in result.stderr:
            return None
        stdout = self._check(result)
        try:
            manifest = json.loads(stdout)
        except ValueError as e:
            raise KubectlError(result.args, f"invalid JSON output: {e}") from e
        return manifest.get("data") or {}

    def _manifest(self, name: str, data: dict[str, str]) -> str:
        return json.dumps(
            {
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "metadata": {"name": name, "namespace": self.namespace},
                "data": data,
            }
        )

    def create_configmap(self, name: str, data: dict[str, str]) -> None:
        self._check(self._run(["create", "--filename", "-"], input_text=self._manifest(name, data)))

    def write_configmap(self, name: str, data: dict[str, str]) -> None:
        """
        Replace a ConfigMap's data, creating the ConfigMap when it is missing.

        Raises:
            KubectlError: If kubectl fails
        """
        result = self._run(["replace", "--filename", "-"], input_text=self._manifest(name, data))
        if result.returncode != 0 and "NotFound" in result.stderr:
            logger.info(f"Creating ConfigMap {self.namespace}/{name}")
            self.create_configmap(name, data)
            return
        self._check(result)
