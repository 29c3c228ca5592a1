# utils/verifier.py
import logging
from enum import Enum

from utils.completion import CompletionDetector
from utils.counters import CounterSet
from utils.errors import PacketError
from utils.fingerprint import Group, verify
from utils.packet import PacketBuffer, parse_l4_data, ipv4_src


class Verdict(Enum):
    FOREIGN = "foreign"
    BROKEN = "broken"
    GROUP_A = "group_a"
    GROUP_B = "group_b"
    UNKNOWN_GROUP = "unknown_group"


_GROUP_COUNTERS = {
    Group.A: ("received_a", Verdict.GROUP_A),
    Group.B: ("received_b", Verdict.GROUP_B),
}


class IntegrityVerifier:
    """
    Receive-side handler: count every arrival, then classify it.

    Outcomes are returned, never raised:
      FOREIGN        headers did not parse (traffic not produced by this harness)
      BROKEN         fingerprint mismatch; never also counted as a group member
      GROUP_A/B      valid fingerprint, known source address
      UNKNOWN_GROUP  valid fingerprint, unknown source address (logged only)
    """

    def __init__(self, counters: CounterSet, detector: CompletionDetector):
        self.counters = counters
        self.detector = detector

    def __call__(self, packet: PacketBuffer) -> Verdict:
        recv_count = self.counters.increment("received_total")
        try:
            return self._classify(packet)
        finally:
            self.detector.check(recv_count)

    def _classify(self, packet: PacketBuffer) -> Verdict:
        offset = parse_l4_data(packet)
        if offset < 0:
            # The receive port can see traffic that was not generated here; skip it.
            logging.debug(f"[RX] parse_l4_data returned {offset}; frame excluded")
            return Verdict.FOREIGN

        try:
            intact = verify(packet)
        except PacketError as e:
            logging.debug(f"[RX] no room for fingerprint: {e}")
            intact = False
        if not intact:
            self.counters.increment("broken")
            return Verdict.BROKEN

        src = ipv4_src(packet)
        group = Group.from_address(src)
        if group is None:
            logging.warning(f"[RX] packet IPv4 src addr {src} does not match {Group.A.address} or {Group.B.address}")
            return Verdict.UNKNOWN_GROUP

        counter_name, verdict = _GROUP_COUNTERS[group]
        self.counters.increment(counter_name)
        return verdict
