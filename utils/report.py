# utils/report.py
"""
Pass/fail decision for a finished run.

The run passes when both groups make up a near-equal share of what came back
(``|share_a - share_b| < FAIRNESS_LIMIT`` percentage points) and the overall yield
(received/sent, in percent) is strictly above the configured limit. Ratios whose
denominator is zero are left as None and the run fails with "insufficient data".
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from utils.completion import REASON_COMPLETE, REASON_TIMEOUT, REASON_ABORTED
from utils.counters import CounterSnapshot

FAIRNESS_LIMIT = 4.0
DEFAULT_PASSED_LIMIT = 85

PASSED = "TEST PASSED"
FAILED = "TEST FAILED"


@dataclass(frozen=True)
class Report:
    counters: CounterSnapshot
    passed_limit: float
    sent: int
    received: int
    yield_a: Optional[float]
    yield_b: Optional[float]
    share_a: Optional[float]
    share_b: Optional[float]
    overall_yield: Optional[float]
    passed: bool
    end_reason: str = REASON_COMPLETE
    reasons: Tuple[str, ...] = ()

    @property
    def aborted(self) -> bool:
        return self.end_reason == REASON_ABORTED

    @property
    def broken(self) -> int:
        return self.counters.broken

    @property
    def verdict(self) -> str:
        return PASSED if self.passed else FAILED


def _percent(part: int, whole: int) -> Optional[float]:
    if whole == 0:
        return None
    return part * 100.0 / whole


def build_report(snapshot: CounterSnapshot, passed_limit: float = DEFAULT_PASSED_LIMIT,
                 reason: str = REASON_COMPLETE) -> Report:
    sent = snapshot.sent_a + snapshot.sent_b
    received = snapshot.received_a + snapshot.received_b

    yield_a = _percent(snapshot.received_a, snapshot.sent_a)
    yield_b = _percent(snapshot.received_b, snapshot.sent_b)
    share_a = _percent(snapshot.received_a, received)
    share_b = _percent(snapshot.received_b, received)
    overall = _percent(received, sent)

    reasons = []
    if reason == REASON_TIMEOUT:
        reasons.append("timed out")
    elif reason == REASON_ABORTED:
        reasons.append("aborted")

    missing = [name for name, value in (("sent_a", snapshot.sent_a),
                                        ("sent_b", snapshot.sent_b),
                                        ("received", received)) if value == 0]
    if missing:
        reasons.append(f"insufficient data: {', '.join(missing)} is zero")
    else:
        spread = abs(share_a - share_b)
        if spread >= FAIRNESS_LIMIT:
            reasons.append(f"group shares differ by {spread:.1f} points (limit {FAIRNESS_LIMIT:g})")
        if not overall > passed_limit:
            reasons.append(f"overall yield {overall:.1f}% not above {passed_limit}%")

    return Report(
        counters=snapshot,
        passed_limit=passed_limit,
        sent=sent,
        received=received,
        yield_a=yield_a,
        yield_b=yield_b,
        share_a=share_a,
        share_b=share_b,
        overall_yield=overall,
        passed=not reasons,
        end_reason=reason,
        reasons=tuple(reasons),
    )


def _fmt(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.1f}"


def format_report(report: Report) -> List[str]:
    lines = [
        f"Sent {report.sent} packets",
        f"Received {report.received} packets",
        f"Group1 ratio = {_fmt(report.yield_a)} %",
        f"Group2 ratio = {_fmt(report.yield_b)} %",
        f"Group1 proportion in received flow = {_fmt(report.share_a)} %",
        f"Group2 proportion in received flow = {_fmt(report.share_b)} %",
        f"Broken = {report.broken} packets",
    ]
    for reason in report.reasons:
        lines.append(f"Reason: {reason}")
    lines.append(report.verdict)
    return lines
