import json
import socket
from types import SimpleNamespace
from unittest import mock

import pytest

from microcore.registry import Node, Service
from microcore.utils import (
    get_local_ip,
    is_private_ip,
    listen,
    listen_addr,
    must_string,
    new_uuid,
)


def _addr(address, broadcast=None, family=socket.AF_INET):
    return SimpleNamespace(family=family, address=address, broadcast=broadcast)


def test_must_string_round_trips_mapping():
    value = {"a": 1, "b": [1, 2], "c": "x"}
    assert json.loads(must_string(value)) == value


def test_must_string_is_compact():
    assert " " not in must_string({"a": 1, "b": [1, 2]})


def test_must_string_encodes_dataclass_with_field_names():
    service = Service(name="svc", version="v1", nodes=[Node(id="n1", address="10.0.0.1", port=80)])
    decoded = json.loads(must_string(service))
    assert decoded["name"] == "svc"
    assert decoded["nodes"][0]["address"] == "10.0.0.1"


def test_must_string_rejects_unencodable():
    with pytest.raises(TypeError):
        must_string(object())


def test_new_uuid_is_hex_without_dashes():
    value = new_uuid()
    assert len(value) == 32
    assert "-" not in value
    int(value, 16)


def test_new_uuid_is_unique():
    assert len({new_uuid() for _ in range(50)}) == 50


@pytest.mark.parametrize(
    "ip, expected",
    [
        ("10.1.2.3", True),
        ("172.16.0.1", True),
        ("172.32.0.1", False),
        ("192.168.1.1", True),
        ("8.8.8.8", False),
        ("not-an-ip", False),
        ("::1", False),
        ("::ffff:10.0.0.1", True),
    ],
)
def test_is_private_ip(ip, expected):
    assert is_private_ip(ip) is expected


def test_listen_without_colon_passes_address_through():
    seen = []
    assert listen("somewhere", lambda a: seen.append(a) or "ok") == "ok"
    assert seen == ["somewhere"]


def test_listen_single_port_passes_address_through():
    seen = []
    listen("localhost:5000", lambda a: seen.append(a))
    assert seen == ["localhost:5000"]


def test_listen_range_returns_first_success():
    tried = []

    def bind(addr):
        tried.append(addr)
        if addr.endswith(":5002"):
            return addr
        raise OSError("busy")

    assert listen("localhost:5000-5005", bind) == "localhost:5002"
    assert tried == ["localhost:5000", "localhost:5001", "localhost:5002"]


def test_listen_range_raises_last_error():
    def bind(addr):
        raise OSError(addr)

    with pytest.raises(OSError) as info:
        listen("localhost:5000-5002", bind)
    assert str(info.value) == "localhost:5002"


def test_listen_bad_range():
    with pytest.raises(ValueError, match="unable to extract port range"):
        listen("localhost:a-5", lambda a: a)


def test_listen_empty_range():
    with pytest.raises(OSError, match="unable to bind"):
        listen("localhost:6-5", lambda a: a)


def _patched(addrs, stats):
    return (
        mock.patch("psutil.net_if_addrs", return_value=addrs),
        mock.patch("psutil.net_if_stats", return_value=stats),
    )


def test_get_local_ip_picks_private_address_of_usable_interface():
    addrs = {
        "lo": [_addr("127.0.0.1")],
        "docker0": [_addr("172.17.0.1", "172.17.255.255")],
        "eth1": [_addr("192.168.5.5", "192.168.5.255")],
        "eth0": [_addr("10.0.0.7", "10.0.0.255")],
    }
    stats = {
        "lo": SimpleNamespace(isup=True),
        "docker0": SimpleNamespace(isup=True),
        "eth1": SimpleNamespace(isup=False),
        "eth0": SimpleNamespace(isup=True),
    }
    p1, p2 = _patched(addrs, stats)
    with p1, p2:
        assert get_local_ip() == "10.0.0.7"


def test_get_local_ip_without_private_address():
    addrs = {"eth0": [_addr("8.8.8.8", "8.8.8.255")]}
    stats = {"eth0": SimpleNamespace(isup=True)}
    p1, p2 = _patched(addrs, stats)
    with p1, p2, pytest.raises(OSError, match="No private IP"):
        get_local_ip()


def test_listen_addr_joins_ip_and_port():
    addrs = {"eth0": [_addr("10.0.0.7", "10.0.0.255")]}
    stats = {"eth0": SimpleNamespace(isup=True)}
    p1, p2 = _patched(addrs, stats)
    with p1, p2:
        ip, bound = listen_addr(":9000", lambda a: a)
    assert ip == "10.0.0.7"
    assert bound == "10.0.0.7:9000"