from __future__ import annotations

import ipaddress
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

HOST_IDS = range(1, 255)

_PREFIX_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.$")


class InvalidSubnet(ValueError):
    pass


@dataclass(frozen=True)
class Target:
    address: str
    port: int


def parse_subnet(value: str) -> str:
    try:
        network = ipaddress.ip_network(value.strip(), strict=False)
    except ValueError as exc:
        raise InvalidSubnet(f"Invalid subnet '{value}'") from exc
    if not isinstance(network, ipaddress.IPv4Network):
        raise InvalidSubnet(f"Invalid subnet '{value}': only IPv4 subnets are supported")
    if network.prefixlen != 24:
        raise InvalidSubnet(f"Invalid subnet '{value}': only /24 subnets are supported")
    head, _, _ = str(network.network_address).rpartition(".")
    return f"{head}."


def validate_prefix(prefix: str) -> str:
    match = _PREFIX_RE.match(prefix)
    if not match or any(int(octet) > 255 for octet in match.groups()):
        raise InvalidSubnet(f"Invalid subnet prefix '{prefix}'")
    return prefix


def iter_addresses(prefix: str) -> Iterator[str]:
    # Host ids 0 and 255 are the network and broadcast addresses of the /24.
    validate_prefix(prefix)
    for host_id in HOST_IDS:
        yield f"{prefix}{host_id}"


def iter_targets(prefixes: Iterable[str], port: int) -> Iterator[Target]:
    for prefix in prefixes:
        for address in iter_addresses(prefix):
            yield Target(address=address, port=port)
