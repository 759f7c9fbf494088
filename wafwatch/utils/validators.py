"""
Validation Utilities
IP address checks and IP set address normalisation
"""

import ipaddress
from collections.abc import Iterable
from typing import List


def validate_ip_address(ip: str) -> bool:
    try:
        ipaddress.ip_address(ip)
        return True
    except ValueError:
        return False


def validate_cidr(address: str) -> bool:
    try:
        ipaddress.ip_network(address, strict=False)
        return True
    except ValueError:
        return False


def normalize_ip(address: str) -> str:
    """``192.168.0.101/32`` -> ``192.168.0.101``"""
    return address.strip().split("/")[0]


def to_host_cidr(ip: str) -> str:
    ip = normalize_ip(ip)
    suffix = 128 if validate_ip_address(ip) and ipaddress.ip_address(ip).version == 6 else 32
    return f"{ip}/{suffix}"


def prepare_ip_set_addresses(addresses) -> List[str]:
    """The remote store may hand back a list, a single address or nothing."""
    if isinstance(addresses, str):
        return [addresses] if validate_cidr(addresses) or validate_ip_address(addresses) else []
    if isinstance(addresses, Iterable):
        return [address for address in addresses if isinstance(address, str)]
    return []
