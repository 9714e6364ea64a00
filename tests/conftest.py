import json
import socket
from pathlib import Path

import pytest


BLOCKED_CALLS = []
EGRESS_REPORT = Path("artifacts") / "egress-violations.json"
LOOPBACK = ("localhost", "127.0.0.1", "::1")


def _loopback_only(name, real, host_of):
    def guarded(target, *args, **kwargs):
        if host_of(target) in LOOPBACK:
            return real(target, *args, **kwargs)
        BLOCKED_CALLS.append({"fn": name, "target": str(target)})
        raise RuntimeError(f"Egress blocked: {name} to {target!r}")

    return guarded


@pytest.fixture(autouse=True, scope="session")
def egress_guard():
    """Audit-file generation and validation never talk to the network."""

    originals = {"getaddrinfo": socket.getaddrinfo, "create_connection": socket.create_connection}
    socket.getaddrinfo = _loopback_only("getaddrinfo", originals["getaddrinfo"], str)  # type: ignore[assignment]
    socket.create_connection = _loopback_only(  # type: ignore[assignment]
        "create_connection",
        originals["create_connection"],
        lambda address: str(address[0]) if isinstance(address, tuple) and address else None,
    )

    yield

    for name, real in originals.items():
        setattr(socket, name, real)

    if BLOCKED_CALLS:
        EGRESS_REPORT.parent.mkdir(parents=True, exist_ok=True)
        EGRESS_REPORT.write_text(json.dumps(BLOCKED_CALLS, indent=2))


@pytest.fixture(autouse=True)
def _temp_validation_mode(monkeypatch):
    monkeypatch.setenv("SAFT_VALIDATION_MODE", "temp")
