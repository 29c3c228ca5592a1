# utils/errors.py
"""Exceptions raised by the merge test harness."""


class MergeCheckError(Exception):
    """Base class for harness errors."""


class PacketError(MergeCheckError):
    """Raised when a packet view falls outside the buffer or a payload is too short."""


class PacketAllocationError(PacketError):
    """Raised when a generator could not construct a packet. Fatal for the run."""


class PipelineError(MergeCheckError):
    """Raised for an invalid flow topology or not enough cores to run it."""
