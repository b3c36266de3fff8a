"""Cluster access for ksheldon."""

from ksheldon.cluster.base import ClusterClient, ExecProcess
from ksheldon.cluster.oc import OcClient, OcConfig, PexpectExecProcess

__all__ = [
    "ClusterClient",
    "ExecProcess",
    "OcClient",
    "OcConfig",
    "PexpectExecProcess",
]
