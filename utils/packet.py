# utils/packet.py
"""
Packet buffer and the small set of construction/parsing helpers the harness needs.

Frames are kept as raw bytes (what goes on the wire) inside a PacketBuffer. Scapy is
used to build and decode them; header and payload bytes are only ever reached through
bounds-checked memoryview slices computed from ``l4_offset``.
"""
import logging
import socket
from typing import Optional

from scapy.all import Ether, Dot1Q, IP, IPv6, UDP, Raw

from utils.errors import PacketError

DEFAULT_SRC_MAC = "00:00:00:00:00:01"
DEFAULT_DST_MAC = "00:00:00:00:00:02"
DEFAULT_SRC_IP = "0.0.0.0"
DEFAULT_DST_IP = "0.0.0.0"
DEFAULT_UDP_PORT = 1234

ETH_HDR_LEN = 14
DOT1Q_HDR_LEN = 4
IPV6_HDR_LEN = 40
UDP_HDR_LEN = 8
ICMP_HDR_LEN = 8
IPV4_MIN_IHL = 5
TCP_MIN_DATAOFS = 5
TCP_DATAOFS_BYTE = 12


class PacketBuffer:
    """Mutable frame bytes plus the offset where L4 payload starts."""

    def __init__(self, data, l4_offset: Optional[int] = None):
        self.data = bytearray(data)
        self.l4_offset = l4_offset
        self.layers = None  # decoded scapy packet, cached by parse_l4_data()

    def __len__(self):
        return len(self.data)

    def __bytes__(self):
        return bytes(self.data)

    def __repr__(self):
        return f"PacketBuffer(len={len(self.data)}, l4_offset={self.l4_offset})"

    def view(self, start: int, end: int) -> memoryview:
        if start < 0 or end < start or end > len(self.data):
            raise PacketError(f"view [{start}:{end}] outside buffer of {len(self.data)} bytes")
        return memoryview(self.data)[start:end]

    def header_view(self) -> memoryview:
        if self.l4_offset is None:
            raise PacketError("headers not parsed; l4_offset unknown")
        return self.view(0, self.l4_offset)

    def payload_view(self, size: Optional[int] = None) -> memoryview:
        if self.l4_offset is None:
            raise PacketError("headers not parsed; l4_offset unknown")
        end = len(self.data) if size is None else self.l4_offset + size
        return self.view(self.l4_offset, end)

    def to_scapy(self):
        return Ether(bytes(self.data))


def init_empty_ether_ipv4_udp_packet(payload_size: int,
                                     src: str = DEFAULT_SRC_IP,
                                     dst: str = DEFAULT_DST_IP,
                                     src_mac: str = DEFAULT_SRC_MAC,
                                     dst_mac: str = DEFAULT_DST_MAC,
                                     sport: int = DEFAULT_UDP_PORT,
                                     dport: int = DEFAULT_UDP_PORT) -> PacketBuffer:
    """
    Build an Ether/IPv4/UDP frame with a zero-filled payload of ``payload_size`` bytes.

    UDP checksum is pinned to 0 ("no checksum") so header bytes never depend on what is
    later written into the payload.
    """
    if payload_size < 0:
        raise PacketError(f"payload size must be >= 0, got {payload_size}")
    pkt = (Ether(src=src_mac, dst=dst_mac)
           / IP(src=src, dst=dst)
           / UDP(sport=sport, dport=dport, chksum=0)
           / Raw(load=b"\x00" * payload_size))
    frame = bytes(pkt)
    return PacketBuffer(frame, l4_offset=len(frame) - payload_size)


def parse_l4_data(packet: PacketBuffer) -> int:
    """
    Decode L2/L3/L4 headers and return the offset of the L4 payload, or -1 when the
    frame is not Ether[/802.1Q]/IPv4|IPv6/UDP|TCP|ICMP.

    The L4 header is picked from the IP protocol field rather than from scapy's layer
    binding, which only decodes L4 for unfragmented packets.
    """
    try:
        pkt = Ether(bytes(packet.data))
    except Exception as e:
        logging.debug(f"[PARSE] undecodable frame ({len(packet.data)} bytes): {e}")
        return -1

    offset = ETH_HDR_LEN
    layer = pkt.payload
    while isinstance(layer, Dot1Q):
        offset += DOT1Q_HDR_LEN
        layer = layer.payload

    if isinstance(layer, IP):
        if layer.ihl is None or layer.ihl < IPV4_MIN_IHL:
            return -1
        offset += layer.ihl * 4
        proto = layer.proto
    elif isinstance(layer, IPv6):
        offset += IPV6_HDR_LEN
        proto = layer.nh
    else:
        return -1

    if proto == socket.IPPROTO_UDP:
        offset += UDP_HDR_LEN
    elif proto == socket.IPPROTO_TCP:
        if offset + TCP_DATAOFS_BYTE >= len(packet.data):
            return -1
        dataofs = packet.data[offset + TCP_DATAOFS_BYTE] >> 4
        if dataofs < TCP_MIN_DATAOFS:
            return -1
        offset += dataofs * 4
    elif proto == socket.IPPROTO_ICMP:
        offset += ICMP_HDR_LEN
    else:
        return -1

    if offset > len(packet.data):
        return -1
    packet.l4_offset = offset
    packet.layers = pkt
    return offset


def set_ipv4_src(packet: PacketBuffer, address: str) -> None:
    """Rewrite the IPv4 source address; the IP checksum is recomputed."""
    pkt = packet.to_scapy()
    if IP not in pkt:
        raise PacketError("frame has no IPv4 header")
    pkt[IP].src = address
    del pkt[IP].chksum
    packet.data = bytearray(bytes(pkt))
    packet.layers = None


def ipv4_src(packet: PacketBuffer) -> Optional[str]:
    pkt = packet.layers if packet.layers is not None else packet.to_scapy()
    if IP not in pkt:
        return None
    return pkt[IP].src
