"""Pytest fixtures and configuration for integration tests."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line(
        "markers",
        "integration: integration tests requiring real infrastructure",
    )
    config.addinivalue_line(
        "markers",
        "kubernetes: tests requiring kubernetes cluster (Kind or OpenShift)",
    )


@pytest.fixture(scope="session")
def has_oc() -> bool:
    """Check if oc CLI is available on the system."""
    return shutil.which("oc") is not None


@pytest.fixture(scope="session")
def kubeconfig() -> Path | None:
    """Kubeconfig to test against, from KSHELDON_KUBECONFIG or KUBECONFIG."""
    path = os.environ.get("KSHELDON_KUBECONFIG") or os.environ.get("KUBECONFIG")
    return Path(path) if path else None


@pytest.fixture(scope="session")
def kubernetes_available(has_oc: bool, kubeconfig: Path | None) -> bool:
    """Check if a Kubernetes cluster is accessible."""
    if not has_oc:
        return False

    cmd = ["oc"]
    if kubeconfig:
        cmd.extend(["--kubeconfig", str(kubeconfig)])
    cmd.append("cluster-info")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=30,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


@pytest.fixture
def require_kubernetes(kubernetes_available: bool) -> None:
    """Skip test if kubernetes cluster is not available."""
    if not kubernetes_available:
        pytest.skip("kubernetes cluster not available")
