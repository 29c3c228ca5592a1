# utils/counters.py
import threading
from dataclasses import dataclass, fields

COUNTER_NAMES = ("sent_a", "sent_b", "received_a", "received_b", "received_total", "broken")


@dataclass(frozen=True)
class CounterSnapshot:
    sent_a: int = 0
    sent_b: int = 0
    received_a: int = 0
    received_b: int = 0
    received_total: int = 0
    broken: int = 0

    def as_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


class CounterSet:
    """
    Shared sent/received/broken tallies for one run.

    Each counter has a single writer role (a generator owns its sent counter, the
    verifier owns the receive side) but several threads may run the same role, so every
    increment is a locked read-modify-write that hands back the new value.
    Counters start at zero and are never reset.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._values = dict.fromkeys(COUNTER_NAMES, 0)

    def increment(self, name: str, delta: int = 1) -> int:
        if delta < 0:
            raise ValueError(f"counters never decrease (got delta={delta} for {name})")
        with self.lock:
            if name not in self._values:
                raise KeyError(f"unknown counter '{name}'")
            self._values[name] += delta
            return self._values[name]

    def get(self, name: str) -> int:
        with self.lock:
            return self._values[name]

    def snapshot(self) -> CounterSnapshot:
        with self.lock:
            return CounterSnapshot(**self._values)

    def __repr__(self):
        return f"CounterSet({self.snapshot().as_dict()})"
