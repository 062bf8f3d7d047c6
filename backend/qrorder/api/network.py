"""
Restaurant network gating.

Customer-facing endpoints can be limited to the restaurant's own Wi-Fi: a
restaurant lists CIDR ranges and the client address must fall inside one of
them. Restaurants without ranges are not gated.
"""

import ipaddress
import logging
from typing import Iterable, Optional

from fastapi import Request

from qrorder.config import Settings
from qrorder.domain import Restaurant
from qrorder.errors import NetworkNotAllowed

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> Optional[str]:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return None


def ip_in_networks(ip: Optional[str], networks: Iterable[str], allow_loopback: bool = False) -> bool:
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    # IPv4-mapped IPv6 (::ffff:192.168.1.5) compares as IPv4
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    if allow_loopback and address.is_loopback:
        return True

    for cidr in networks:
        try:
            network = ipaddress.ip_network(cidr, strict=False)
        except ValueError:
            logger.warning("[network] Ignoring malformed CIDR %r", cidr)
            continue
        if address.version == network.version and address in network:
            return True
    return False


def enforce_restaurant_network(request: Request, restaurant: Restaurant, settings: Settings) -> None:
    """
    Raises:
        NetworkNotAllowed: the restaurant has ranges and the client is outside all of them
    """
    if not restaurant.allowed_networks:
        return
    ip = client_ip(request)
    if ip_in_networks(ip, restaurant.allowed_networks, allow_loopback=settings.is_dev):
        return
    logger.info("[network] Rejected %s for restaurant %s", ip, restaurant.id)
    raise NetworkNotAllowed("Please connect to the restaurant Wi-Fi to order")
