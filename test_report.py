#!/usr/bin/env python3
"""
Tests for the pass/fail decision and report lines.
"""
import pytest

from utils.completion import REASON_ABORTED, REASON_TIMEOUT
from utils.counters import CounterSnapshot
from utils.report import FAILED, PASSED, build_report, format_report


def _snap(sent_a, sent_b, recv_a, recv_b, broken=0, extra=0):
    return CounterSnapshot(sent_a=sent_a, sent_b=sent_b, received_a=recv_a, received_b=recv_b,
                           received_total=recv_a + recv_b + broken + extra, broken=broken)


def test_balanced_run_passes():
    report = build_report(_snap(1000, 1000, 900, 900), passed_limit=85)
    assert report.sent == 2000
    assert report.received == 1800
    assert report.share_a == pytest.approx(50.0)
    assert report.share_b == pytest.approx(50.0)
    assert report.yield_a == pytest.approx(90.0)
    assert report.overall_yield == pytest.approx(90.0)
    assert report.passed
    assert report.reasons == ()
    assert report.verdict == PASSED


def test_balanced_run_below_limit_fails():
    report = build_report(_snap(1000, 1000, 900, 900), passed_limit=95)
    assert not report.passed
    assert any("yield" in r for r in report.reasons)


def test_yield_must_be_strictly_above_limit():
    report = build_report(_snap(100, 100, 85, 85), passed_limit=85)
    assert not report.passed


def test_biased_merge_fails_regardless_of_yield():
    report = build_report(_snap(1000, 1000, 950, 700), passed_limit=0)
    assert report.share_a == pytest.approx(57.58, abs=0.01)
    assert report.share_b == pytest.approx(42.42, abs=0.01)
    assert not report.passed
    assert any("shares differ" in r for r in report.reasons)


def test_share_difference_just_under_limit_passes():
    # 51.9 vs 48.1
    report = build_report(_snap(1000, 1000, 519, 481), passed_limit=40)
    assert report.passed


def test_zero_sent_is_insufficient_data():
    report = build_report(_snap(0, 1000, 0, 900), passed_limit=85)
    assert not report.passed
    assert report.yield_a is None
    assert report.yield_b == pytest.approx(90.0)
    assert any(r.startswith("insufficient data") and "sent_a" in r for r in report.reasons)


def test_nothing_received_is_insufficient_data():
    report = build_report(_snap(1000, 1000, 0, 0, broken=50), passed_limit=85)
    assert not report.passed
    assert report.share_a is None and report.share_b is None
    assert report.overall_yield == pytest.approx(0.0)
    assert any("received" in r for r in report.reasons)


def test_timeout_fails_but_keeps_ratios():
    report = build_report(_snap(1000, 1000, 900, 900), passed_limit=85, reason=REASON_TIMEOUT)
    assert not report.passed
    assert report.reasons[0] == "timed out"
    assert report.overall_yield == pytest.approx(90.0)


def test_aborted_run():
    report = build_report(_snap(10, 10, 9, 9), reason=REASON_ABORTED)
    assert report.aborted
    assert not report.passed


def test_format_report_lines():
    lines = format_report(build_report(_snap(1000, 1000, 900, 900, broken=3), passed_limit=85))
    assert lines[0] == "Sent 2000 packets"
    assert lines[1] == "Received 1800 packets"
    assert "Group1 ratio = 90.0 %" in lines
    assert "Group2 proportion in received flow = 50.0 %" in lines
    assert "Broken = 3 packets" in lines
    assert lines[-1] == PASSED


def test_format_report_undefined_ratios():
    lines = format_report(build_report(_snap(0, 1000, 0, 900)))
    assert "Group1 ratio = n/a %" in lines
    assert any(line.startswith("Reason: insufficient data") for line in lines)
    assert lines[-1] == FAILED


def test_report_reasons_cannot_be_changed_afterwards():
    report = build_report(_snap(1000, 1000, 900, 900), passed_limit=85, reason=REASON_TIMEOUT)
    assert report.reasons == ("timed out",)
    with pytest.raises(AttributeError):
        report.reasons.append("late")
