# utils/pipeline.py
"""
In-process flow pipeline.

A Flow has one source (generator, receiver or merger), any number of handlers and one
sink (sender or stopper). Each flow runs on its own daemon thread; flows talk to each
other only through ports and bounded queues.

    pipe = Pipeline(cores=16)
    tx = pipe.set_generator(make_packet, rate=1000)
    pipe.set_sender(tx, port)
    rx = pipe.set_receiver(port)
    pipe.set_handler(rx, check_packet)
    pipe.set_stopper(rx)
    pipe.start()            # non-blocking
    ...
    pipe.stop()

A handler returning False drops the packet before it reaches the sink. Any exception
escaping a flow is fatal: the pipeline stops and the on_fatal callbacks run.
"""
import logging
import queue
import threading
import time
from typing import Callable, List, Optional

from utils.errors import PipelineError
from utils.packet import PacketBuffer

DEFAULT_CORES = 16
DEFAULT_QUEUE_DEPTH = 65536
POLL_INTERVAL = 0.1
# Generators that fall this far behind schedule stop trying to catch up.
MAX_LAG_SECONDS = 1.0


def calculate_interval(pps):
    """
    Returns (interval_seconds_between_batches, batch_size) for a packets-per-second rate.
    pps <= 0 means "as fast as possible".
    """
    try:
        pps = int(pps)
    except (TypeError, ValueError):
        logging.warning(f"[Rate] invalid rate: {pps!r}")
        return 0.0, 1

    if pps <= 0:
        logging.warning(f"[Rate] PPS is zero or invalid: {pps}; generating unpaced")
        return 0.0, 1

    if pps <= 100: batch_size = 2
    elif pps <= 500: batch_size = 10
    elif pps <= 1_000: batch_size = 20
    elif pps <= 10_000: batch_size = 100
    elif pps <= 100_000: batch_size = 500
    elif pps <= 1_000_000: batch_size = 2_000
    else: batch_size = 10_000

    batch_size = min(batch_size, pps)
    interval = 1 / max(pps / batch_size, 1e-6)
    logging.info(f"[Rate] resolved_pps={pps}, batch_size={batch_size}, interval={interval:.6f}s")
    return interval, batch_size


class Flow:
    def __init__(self, pipeline: "Pipeline", name: str, source):
        self.pipeline = pipeline
        self.name = name
        self.source = source
        self.handlers: List[Callable[[PacketBuffer], object]] = []
        self.sink: Optional[Callable[[PacketBuffer], object]] = None
        self.sink_name: Optional[str] = None
        self.thread: Optional[threading.Thread] = None
        self.processed = 0

    def __repr__(self):
        return f"Flow({self.name} -> {self.sink_name or 'open'})"


class Pipeline:
    def __init__(self, cores: int = DEFAULT_CORES, queue_depth: int = DEFAULT_QUEUE_DEPTH):
        if cores <= 0:
            raise PipelineError(f"core count must be positive, got {cores}")
        self.cores = cores
        self.queue_depth = queue_depth
        self.flows: List[Flow] = []
        self.stop_event = threading.Event()
        self.fatal_error: Optional[BaseException] = None
        self._fatal_callbacks: List[Callable[[BaseException], None]] = []
        self._ports = []
        self._lock = threading.Lock()
        self.started = False
        logging.info(f"[PIPELINE] initialized with {cores} cores")

    # ---------------------------
    # Topology
    # ---------------------------
    def _new_flow(self, name, source) -> Flow:
        if self.started:
            raise PipelineError("pipeline already started; topology is frozen")
        flow = Flow(self, f"{name}#{len(self.flows)}", source)
        self.flows.append(flow)
        return flow

    def _attach_port(self, port):
        if not any(p is port for p in self._ports):
            self._ports.append(port)

    def _set_sink(self, flow: Flow, sink, sink_name: str):
        if flow.pipeline is not self:
            raise PipelineError(f"{flow} belongs to another pipeline")
        if flow.sink is not None:
            raise PipelineError(f"{flow} already closed by {flow.sink_name}")
        flow.sink = sink
        flow.sink_name = sink_name

    def set_generator(self, fn: Callable[[], PacketBuffer], rate) -> Flow:
        return self._new_flow(f"generator({fn!r})", lambda: self._generate(fn, rate))

    def set_receiver(self, port) -> Flow:
        self._attach_port(port)
        return self._new_flow(f"receiver({port.name})", lambda: self._receive(port))

    def set_merger(self, *flows: Flow) -> Flow:
        if len(flows) < 2:
            raise PipelineError("merger needs at least two flows")
        merged = queue.Queue(maxsize=self.queue_depth)
        for flow in flows:
            self._set_sink(flow, lambda buf: self._put(merged, buf), "merger")
        return self._new_flow("merger", lambda: self._drain(merged))

    def set_handler(self, flow: Flow, fn: Callable[[PacketBuffer], object]):
        if flow.sink is not None:
            raise PipelineError(f"{flow} is closed; add handlers before the sink")
        flow.handlers.append(fn)

    def set_sender(self, flow: Flow, port):
        self._attach_port(port)
        self._set_sink(flow, lambda buf: port.send(bytes(buf.data)), f"sender({port.name})")

    def set_stopper(self, flow: Flow):
        self._set_sink(flow, lambda buf: None, "stopper")

    def on_fatal(self, callback: Callable[[BaseException], None]):
        self._fatal_callbacks.append(callback)

    # ---------------------------
    # Sources
    # ---------------------------
    def _generate(self, fn, rate):
        interval, batch_size = calculate_interval(rate)
        next_due = time.monotonic()
        while not self.stop_event.is_set():
            for _ in range(batch_size):
                yield fn()
            if interval > 0:
                next_due += interval
                delay = next_due - time.monotonic()
                if delay > 0:
                    self.stop_event.wait(delay)
                elif -delay > MAX_LAG_SECONDS:
                    next_due = time.monotonic()

    def _receive(self, port):
        while not self.stop_event.is_set():
            frame = port.recv(timeout=POLL_INTERVAL)
            if frame is not None:
                yield PacketBuffer(frame)

    def _drain(self, q):
        while not self.stop_event.is_set():
            try:
                yield q.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue

    def _put(self, q, item):
        while not self.stop_event.is_set():
            try:
                q.put(item, timeout=POLL_INTERVAL)
                return
            except queue.Full:
                continue

    # ---------------------------
    # Lifecycle
    # ---------------------------
    def _run_flow(self, flow: Flow):
        logging.debug(f"[PIPELINE] {flow} running")
        try:
            for buf in flow.source():
                for handler in flow.handlers:
                    if handler(buf) is False:
                        break
                else:
                    flow.sink(buf)
                flow.processed += 1
                if self.stop_event.is_set():
                    break
        except Exception as e:
            self._fatal(flow, e)
        logging.debug(f"[PIPELINE] {flow} exited after {flow.processed} packets")

    def _fatal(self, flow: Flow, error: BaseException):
        with self._lock:
            first = self.fatal_error is None
            if first:
                self.fatal_error = error
        logging.error(f"[PIPELINE] fatal error in {flow}: {error}")
        self.stop_event.set()
        if first:
            for callback in self._fatal_callbacks:
                callback(error)

    def start(self):
        """Validate the topology, open ports and start every flow thread. Returns immediately."""
        if self.started:
            raise PipelineError("pipeline already started")
        if not self.flows:
            raise PipelineError("no flows to run")
        open_flows = [f for f in self.flows if f.sink is None]
        if open_flows:
            raise PipelineError(f"some flows are left open: {open_flows}")
        if len(self.flows) > self.cores:
            raise PipelineError(f"{len(self.flows)} flows need more than the {self.cores} cores available")

        for port in self._ports:
            port.open()
        self.started = True

        # Receive side first so nothing generated early is missed.
        ordered = sorted(self.flows, key=lambda f: f.name.startswith("generator"))
        for flow in ordered:
            flow.thread = threading.Thread(target=self._run_flow, args=(flow,),
                                           name=flow.name, daemon=True)
            flow.thread.start()
        logging.info(f"[PIPELINE] started {len(self.flows)} flows on {len(self._ports)} ports")

    def stop(self, timeout: float = 2.0):
        self.stop_event.set()
        for flow in self.flows:
            if flow.thread is not None and flow.thread.is_alive():
                flow.thread.join(timeout)
                if flow.thread.is_alive():
                    logging.warning(f"[PIPELINE] {flow} did not exit within {timeout}s")
        for port in self._ports:
            try:
                port.close()
            except Exception as e:
                logging.warning(f"[PIPELINE] closing {port} failed: {e}")
        logging.info("[PIPELINE] stopped")
