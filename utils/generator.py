# utils/generator.py
import logging

from utils.counters import CounterSet
from utils.errors import PacketAllocationError
from utils.fingerprint import Group, PAYLOAD_SIZE, tag
from utils.packet import PacketBuffer, init_empty_ether_ipv4_udp_packet


class GroupGenerator:
    """
    Generate stage for one group: build a packet, tag it, count it as sent.

    Called repeatedly by the pipeline at the configured rate. Only this group's sent
    counter is touched; the two generators never coordinate.
    """

    def __init__(self, group: Group, counters: CounterSet,
                 payload_size: int = PAYLOAD_SIZE,
                 builder=init_empty_ether_ipv4_udp_packet):
        self.group = group
        self.counters = counters
        self.payload_size = payload_size
        self.builder = builder
        self.counter_name = "sent_a" if group is Group.A else "sent_b"

    def __call__(self) -> PacketBuffer:
        try:
            pkt = self.builder(self.payload_size)
        except PacketAllocationError:
            raise
        except Exception as e:
            raise PacketAllocationError(f"failed to create new packet for {self.group.label}: {e}") from e
        if pkt is None:
            raise PacketAllocationError(f"failed to create new packet for {self.group.label}")

        tag(pkt, self.group)
        sent = self.counters.increment(self.counter_name)
        if sent == 1:
            logging.info(f"[TX] {self.group.label} first packet tagged from {self.group.address}")
        return pkt

    def __repr__(self):
        return f"GroupGenerator({self.group.label})"
