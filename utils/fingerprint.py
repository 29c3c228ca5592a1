# utils/fingerprint.py
"""
Group identities and the header fingerprint.

A packet is tagged by writing its group's address into the IPv4 source field and then
storing the MD5 of every header byte (everything before the L4 payload) in the first
16 payload bytes. The receiver recomputes the same digest to detect corruption.
"""
import hashlib
from enum import Enum
from typing import Optional

from utils.errors import PacketAllocationError, PacketError
from utils.packet import PacketBuffer, set_ipv4_src

DIGEST_SIZE = 16
# The payload carries nothing but the digest.
PAYLOAD_SIZE = DIGEST_SIZE


class Group(Enum):
    A = "127.0.0.1"
    B = "128.9.9.5"

    @property
    def address(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return "Group1" if self is Group.A else "Group2"

    @classmethod
    def from_address(cls, address) -> Optional["Group"]:
        for group in cls:
            if group.value == address:
                return group
        return None


def compute_digest(packet: PacketBuffer) -> bytes:
    return hashlib.md5(packet.header_view()).digest()


def embedded_digest(packet: PacketBuffer) -> bytes:
    payload = packet.payload_view()
    if len(payload) < DIGEST_SIZE:
        raise PacketError(f"payload has {len(payload)} bytes, digest needs {DIGEST_SIZE}")
    return bytes(payload[:DIGEST_SIZE])


def tag(packet: Optional[PacketBuffer], group: Group) -> PacketBuffer:
    """Stamp ``group`` into the packet and embed the header fingerprint."""
    if packet is None:
        raise PacketAllocationError(f"no packet to tag for {group.label}")
    set_ipv4_src(packet, group.address)
    digest = compute_digest(packet)
    packet.payload_view(DIGEST_SIZE)[:] = digest
    return packet


def verify(packet: PacketBuffer) -> bool:
    """True when the embedded fingerprint matches the headers. Raises PacketError on a short payload."""
    return compute_digest(packet) == embedded_digest(packet)
