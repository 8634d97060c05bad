#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import socket
from ipaddress import IPv4Address

import netifaces

from .internal_types import *
from .constants import GREE_BROADCAST_ADDRESS

def get_default_ip_gateway(address_family: socket.AddressFamily | int=socket.AF_INET) -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IP gateway in the
       requested family, if any.
       returns (None, None) if there is no default gateway in the requested family."""
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    netiface_family = netifaces.AF_INET if int(address_family) == int(socket.AF_INET) else netifaces.AF_INET6
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netiface_family in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netiface_family][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)

def get_local_broadcast_addresses(include_loopback: bool=False) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[broadcast_address: str, interface_name: str] for the IPV4 interfaces of
       the local host that have a broadcast address. The result is sorted so that the "preferred"
       broadcast address comes first:
           1. The default gateway interface precedes all other interfaces.
           2. Interfaces whose address begins with 172. follow other interfaces. This is a hack to
              deprioritize local docker networks.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    _, default_gateway_ifname = get_default_ip_gateway(socket.AF_INET)
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        for addrinfo in ifinfo.get(netifaces.AF_INET, []):
            ip_str = addrinfo.get('addr')
            broadcast = addrinfo.get('broadcast')
            if ip_str is None or broadcast is None:
                continue
            if IPv4Address(ip_str).is_loopback and not include_loopback:
                continue
            if ifname == default_gateway_ifname:
                priority = 0
            elif ip_str.startswith('172.'):
                priority = 2
            else:
                priority = 1
            result_with_priority.append((priority, broadcast, ifname))
    return [ (broadcast, ifname) for _, broadcast, ifname in sorted(result_with_priority)]

def get_default_broadcast_address() -> str:
    """Returns the broadcast address of the preferred local interface, or the
       limited broadcast address 255.255.255.255 if there is none."""
    addresses = get_local_broadcast_addresses()
    if len(addresses) == 0:
        return GREE_BROADCAST_ADDRESS
    return addresses[0][0]

def normalize_mac(mac: str) -> str:
    """Converts a MAC address in any of the usual notations ("AA:BB:CC:DD:EE:FF",
       "aa-bb-cc-dd-ee-ff") to the lower-case, undelimited form used on the wire."""
    return mac.replace(':', '').replace('-', '').strip().lower()
