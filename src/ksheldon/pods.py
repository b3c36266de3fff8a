"""Pod resolution and container targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ksheldon.cluster.base import ClusterClient
from ksheldon.exceptions import (
    AmbiguousPodError,
    OcError,
    PodNotFoundError,
    TransportError,
)

logger = logging.getLogger(__name__)

# Pods with this suffix are debug copies and must never be targeted.
DEBUG_POD_SUFFIX = "-debug"


@dataclass(frozen=True)
class PodIdentity:
    """A pod, by namespace and name."""

    namespace: str
    name: str


def find_pod_name_from_prefix(
    client: ClusterClient,
    namespace: str,
    prefix: str,
) -> PodIdentity:
    """Find the single pod whose name starts with a prefix.

    Debug copies (names ending in DEBUG_POD_SUFFIX) are ignored.

    Args:
        client: Cluster client used to list pods.
        namespace: Namespace to search.
        prefix: Pod name prefix.

    Returns:
        Identity of the matching pod.

    Raises:
        PodNotFoundError: If no pod matches.
        AmbiguousPodError: If more than one pod matches.
        TransportError: If the pods could not be listed.
    """
    try:
        all_names = client.list_pod_names(namespace)
    except OcError as e:
        raise TransportError(
            f"failed to get pod list: {e}", namespace=namespace
        ) from e

    pod_names = [
        name
        for name in all_names
        if name.startswith(prefix) and not name.endswith(DEBUG_POD_SUFFIX)
    ]

    if not pod_names:
        raise PodNotFoundError(namespace, prefix)
    if len(pod_names) > 1:
        raise AmbiguousPodError(namespace, prefix, pod_names)

    logger.debug("resolved prefix %s in %s to %s", prefix, namespace, pod_names[0])
    return PodIdentity(namespace=namespace, name=pod_names[0])


class ContainerTarget:
    """The namespace, pod, and container a command runs in.

    The pod name is resolved from a prefix once, when the target is
    created. If the pod gets replaced, callers re-resolve it explicitly
    with refresh(); nothing here does that on its own.
    """

    def __init__(
        self,
        client: ClusterClient,
        namespace: str,
        pod_name_prefix: str,
        container_name: str,
        pod_name: str,
    ) -> None:
        self._client = client
        self._namespace = namespace
        self._pod_name_prefix = pod_name_prefix
        self._container_name = container_name
        self._pod_name = pod_name

    @classmethod
    def create(
        cls,
        client: ClusterClient,
        namespace: str,
        pod_name_prefix: str,
        container_name: str,
    ) -> ContainerTarget:
        """Resolve the pod and build a target for one of its containers.

        Raises:
            ResolutionError: If the prefix does not match exactly one pod.
            TransportError: If the pods could not be listed.
        """
        identity = find_pod_name_from_prefix(client, namespace, pod_name_prefix)
        return cls(
            client,
            namespace,
            pod_name_prefix,
            container_name,
            identity.name,
        )

    @property
    def client(self) -> ClusterClient:
        return self._client

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def pod_name(self) -> str:
        return self._pod_name

    @property
    def pod_name_prefix(self) -> str:
        return self._pod_name_prefix

    @property
    def container_name(self) -> str:
        return self._container_name

    @property
    def identity(self) -> PodIdentity:
        return PodIdentity(namespace=self._namespace, name=self._pod_name)

    def refresh(self) -> None:
        """Re-resolve the pod name from the prefix.

        The cached name is left unchanged if resolution fails.

        Raises:
            ResolutionError: If the prefix does not match exactly one pod.
            TransportError: If the pods could not be listed.
        """
        identity = find_pod_name_from_prefix(
            self._client, self._namespace, self._pod_name_prefix
        )
        if identity.name != self._pod_name:
            logger.debug("pod %s replaced by %s", self._pod_name, identity.name)
        self._pod_name = identity.name

    def __repr__(self) -> str:
        return (
            f"ContainerTarget(namespace={self._namespace!r}, "
            f"pod={self._pod_name!r}, container={self._container_name!r})"
        )
