"""Tests for pod resolution and container targets."""

from __future__ import annotations

import pytest

from ksheldon.exceptions import (
    AmbiguousPodError,
    OcTimeoutError,
    PodNotFoundError,
    ResolutionError,
    TransportError,
)
from ksheldon.pods import ContainerTarget, PodIdentity, find_pod_name_from_prefix

NS = "openshift-ptp"
PREFIX = "linuxptp-daemon-"
CONTAINER = "linuxptp-daemon-container"


class TestFindPodNameFromPrefix:
    """Tests for find_pod_name_from_prefix."""

    def test_returns_single_match(self, make_client) -> None:
        client = make_client(
            pod_names=["ptp-operator-7d9f", "linuxptp-daemon-abcde", "gpsd-xyz"]
        )

        identity = find_pod_name_from_prefix(client, NS, PREFIX)

        assert identity == PodIdentity(namespace=NS, name="linuxptp-daemon-abcde")
        assert client.list_calls == [NS]

    def test_ignores_debug_pods(self, make_client) -> None:
        """Debug copies never match, even with the right prefix."""
        client = make_client(
            pod_names=["linuxptp-daemon-1-debug", "linuxptp-daemon-abcde"]
        )

        identity = find_pod_name_from_prefix(client, NS, PREFIX)

        assert identity.name == "linuxptp-daemon-abcde"

    def test_only_debug_pod_is_not_found(self, make_client) -> None:
        client = make_client(pod_names=["linuxptp-daemon-1-debug"])

        with pytest.raises(PodNotFoundError):
            find_pod_name_from_prefix(client, NS, PREFIX)

    def test_no_match_names_namespace_and_prefix(self, make_client) -> None:
        client = make_client(pod_names=["ptp-operator-7d9f"])

        with pytest.raises(PodNotFoundError) as exc_info:
            find_pod_name_from_prefix(client, NS, PREFIX)

        assert str(exc_info.value) == (
            "no pod with prefix linuxptp-daemon- found in namespace openshift-ptp"
        )
        assert exc_info.value.namespace == NS
        assert exc_info.value.prefix == PREFIX

    def test_empty_namespace_is_not_found(self, make_client) -> None:
        client = make_client(pod_names=[])

        with pytest.raises(ResolutionError):
            find_pod_name_from_prefix(client, NS, PREFIX)

    def test_multiple_matches_are_ambiguous(self, make_client) -> None:
        """No tie-break between matching pods."""
        client = make_client(
            pod_names=[
                "linuxptp-daemon-abcde",
                "linuxptp-daemon-fghij",
                "linuxptp-daemon-klmno",
            ]
        )

        with pytest.raises(AmbiguousPodError) as exc_info:
            find_pod_name_from_prefix(client, NS, PREFIX)

        assert exc_info.value.count == 3
        assert str(exc_info.value) == (
            "too many (3) pods with prefix linuxptp-daemon- "
            "found in namespace openshift-ptp"
        )

    def test_list_failure_is_wrapped(self, make_client) -> None:
        client = make_client()

        def _fail(namespace: str) -> list[str]:
            raise OcTimeoutError("oc command timed out after 30s")

        client.list_pod_names = _fail

        with pytest.raises(TransportError) as exc_info:
            find_pod_name_from_prefix(client, NS, PREFIX)

        assert "failed to get pod list" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OcTimeoutError)
        assert exc_info.value.context == {"namespace": NS}


class TestContainerTarget:
    """Tests for ContainerTarget."""

    def test_create_resolves_pod(self, make_client) -> None:
        client = make_client()

        target = ContainerTarget.create(client, NS, PREFIX, CONTAINER)

        assert target.namespace == NS
        assert target.pod_name == "linuxptp-daemon-abcde"
        assert target.pod_name_prefix == PREFIX
        assert target.container_name == CONTAINER
        assert target.client is client
        assert target.identity == PodIdentity(NS, "linuxptp-daemon-abcde")

    def test_create_fails_when_resolution_fails(self, make_client) -> None:
        client = make_client(pod_names=[])

        with pytest.raises(PodNotFoundError):
            ContainerTarget.create(client, NS, PREFIX, CONTAINER)

    def test_pod_name_is_cached(self, make_client) -> None:
        """The pod list is not consulted again until refresh()."""
        client = make_client()
        target = ContainerTarget.create(client, NS, PREFIX, CONTAINER)
        client.pod_names = ["linuxptp-daemon-zzzzz"]

        assert target.pod_name == "linuxptp-daemon-abcde"
        assert client.list_calls == [NS]

    def test_refresh_picks_up_replaced_pod(self, make_client) -> None:
        client = make_client()
        target = ContainerTarget.create(client, NS, PREFIX, CONTAINER)
        client.pod_names = ["linuxptp-daemon-zzzzz"]

        target.refresh()

        assert target.pod_name == "linuxptp-daemon-zzzzz"
        assert client.list_calls == [NS, NS]

    def test_failed_refresh_keeps_cached_name(self, make_client) -> None:
        client = make_client()
        target = ContainerTarget.create(client, NS, PREFIX, CONTAINER)
        client.pod_names = ["linuxptp-daemon-aaaaa", "linuxptp-daemon-bbbbb"]

        with pytest.raises(AmbiguousPodError):
            target.refresh()

        assert target.pod_name == "linuxptp-daemon-abcde"

    def test_repr(self, make_client) -> None:
        target = ContainerTarget.create(make_client(), NS, PREFIX, CONTAINER)

        assert repr(target) == (
            "ContainerTarget(namespace='openshift-ptp', "
            "pod='linuxptp-daemon-abcde', container='linuxptp-daemon-container')"
        )
