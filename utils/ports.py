# utils/ports.py
"""
Ports the pipeline sends to and receives from.

LoopbackLink emulates a cable between two test machines entirely in memory, so part 1
(generate/verify) and part 2 (merge/forward) can run in a single process. InterfacePort
puts frames on a real NIC with scapy and sniffs them back.
"""
import logging
import queue
import threading
from typing import Optional

from utils.errors import PipelineError
from utils.helpers import is_interface_up

DEFAULT_QUEUE_DEPTH = 65536


class LoopbackPort:
    """One end of a LoopbackLink. Frames sent here arrive at the peer end."""

    def __init__(self, name: str, depth: int = DEFAULT_QUEUE_DEPTH):
        self.name = name
        self.rx = queue.Queue(maxsize=depth)
        self.peer: Optional["LoopbackPort"] = None
        self.lock = threading.Lock()
        self.tx_count = 0
        self.dropped = 0

    def send(self, frame: bytes) -> bool:
        try:
            self.peer.rx.put_nowait(bytes(frame))
        except queue.Full:
            # A full ring drops like a NIC would; the harness sees it as loss.
            with self.lock:
                self.dropped += 1
            return False
        with self.lock:
            self.tx_count += 1
        return True

    def recv(self, timeout: Optional[float] = None) -> Optional[bytes]:
        try:
            return self.rx.get(timeout=timeout)
        except queue.Empty:
            return None

    def open(self):
        pass

    def close(self):
        pass

    def __repr__(self):
        return f"LoopbackPort({self.name})"


class LoopbackLink:
    def __init__(self, name: str = "lo", depth: int = DEFAULT_QUEUE_DEPTH):
        self.near = LoopbackPort(f"{name}.near", depth)
        self.far = LoopbackPort(f"{name}.far", depth)
        self.near.peer = self.far
        self.far.peer = self.near


class InterfacePort:
    """
    Real interface: scapy sendp() for TX, AsyncSniffer feeding a queue for RX.

    The default filter only passes inbound frames so a port used for both sending and
    receiving does not count its own transmissions.
    """

    def __init__(self, iface: str, depth: int = DEFAULT_QUEUE_DEPTH, bpf: Optional[str] = "inbound and udp"):
        self.name = iface
        self.iface = iface
        self.bpf = bpf
        self.rx = queue.Queue(maxsize=depth)
        self.lock = threading.Lock()
        self.tx_count = 0
        self.dropped = 0
        self._sniffer = None

    def open(self):
        if not is_interface_up(self.iface):
            raise PipelineError(f"interface '{self.iface}' is not up")
        if self._sniffer is not None:
            return
        from scapy.all import AsyncSniffer

        def on_pkt(pkt):
            try:
                self.rx.put_nowait(bytes(pkt))
            except queue.Full:
                with self.lock:
                    self.dropped += 1

        self._sniffer = AsyncSniffer(iface=self.iface, prn=on_pkt, store=False,
                                     filter=self.bpf, promisc=True)
        self._sniffer.start()
        logging.info(f"[RX] sniffer started on {self.iface} (filter={self.bpf})")

    def close(self):
        if self._sniffer is None:
            return
        try:
            self._sniffer.stop()
        except Exception as e:
            logging.warning(f"[RX] sniffer stop() error on {self.iface}: {e}")
        finally:
            self._sniffer = None
            logging.info(f"[RX] sniffer stopped on {self.iface}")

    def send(self, frame: bytes) -> bool:
        from scapy.all import sendp, Ether
        try:
            sendp(Ether(bytes(frame)), iface=self.iface, verbose=False)
        except Exception as e:
            logging.warning(f"[TX] send failed on {self.iface}: {e}")
            with self.lock:
                self.dropped += 1
            return False
        with self.lock:
            self.tx_count += 1
        return True

    def recv(self, timeout: Optional[float] = None) -> Optional[bytes]:
        try:
            return self.rx.get(timeout=timeout)
        except queue.Empty:
            return None

    def __repr__(self):
        return f"InterfacePort({self.iface})"
