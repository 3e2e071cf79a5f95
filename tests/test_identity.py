"""Tests for client identity resolution."""

from bucketguard.services.identity import hash_identity, resolve_client_identity


def test_forwarded_header_wins_over_peer(make_request) -> None:
    request = make_request(forwarded_for="203.0.113.5", client=("10.0.0.1", 1))

    assert resolve_client_identity(request) == "203.0.113.5"


def test_forwarded_header_is_taken_verbatim(make_request) -> None:
    request = make_request(forwarded_for=" 203.0.113.5, 10.0.0.2 ")

    assert resolve_client_identity(request) == "203.0.113.5, 10.0.0.2"


def test_falls_back_to_peer_address(make_request) -> None:
    request = make_request(client=("192.0.2.44", 1234))

    assert resolve_client_identity(request) == "192.0.2.44"


def test_empty_header_falls_back_to_peer(make_request) -> None:
    request = make_request(forwarded_for="", client=("192.0.2.44", 1234))

    assert resolve_client_identity(request) == "192.0.2.44"


def test_no_signals_resolves_to_none(make_request) -> None:
    assert resolve_client_identity(make_request(client=None)) is None


def test_custom_header_name(make_request) -> None:
    request = make_request(forwarded_for="203.0.113.5", client=("192.0.2.44", 1))

    assert resolve_client_identity(request, forwarded_header="x-real-ip") == "192.0.2.44"


def test_hash_identity_is_stable_and_opaque() -> None:
    hashed = hash_identity("203.0.113.5")

    assert hashed == hash_identity("203.0.113.5")
    assert hashed != "203.0.113.5"
    assert len(hashed) == 16
    int(hashed, 16)
