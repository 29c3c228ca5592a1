# utils/faults.py
import logging
import random
import threading

from utils.packet import PacketBuffer, parse_l4_data


class FaultInjector:
    """
    Pipeline handler that damages or drops forwarded packets on purpose.

    ``corrupt_ratio`` flips one random bit inside the header span, ``drop_ratio``
    discards the packet (handler returns False). Used on the loopback merge stage to
    check that the verifier actually notices a lossy or corrupting pipeline.
    """

    def __init__(self, corrupt_ratio: float = 0.0, drop_ratio: float = 0.0, seed=None):
        for name, value in (("corrupt_ratio", corrupt_ratio), ("drop_ratio", drop_ratio)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        self.corrupt_ratio = corrupt_ratio
        self.drop_ratio = drop_ratio
        self.rng = random.Random(seed)
        self.lock = threading.Lock()
        self.corrupted = 0
        self.dropped = 0

    @property
    def active(self) -> bool:
        return self.corrupt_ratio > 0 or self.drop_ratio > 0

    def __call__(self, packet: PacketBuffer):
        with self.lock:
            drop = self.rng.random() < self.drop_ratio
            corrupt = not drop and self.rng.random() < self.corrupt_ratio
            if drop:
                self.dropped += 1
                return False
            if not corrupt:
                return True
            offset = parse_l4_data(packet)
            if offset <= 0:
                return True
            bit = self.rng.randrange(offset * 8)
            self.corrupted += 1
        packet.data[bit // 8] ^= 1 << (bit % 8)
        packet.layers = None
        logging.debug(f"[MERGE] flipped header bit {bit}")
        return True
