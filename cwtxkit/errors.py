"""Exceptions raised while building, broadcasting and reading transactions."""

from __future__ import annotations


class DaemonError(Exception):
    """Base class for every error raised by this package."""


class TxFailedError(DaemonError):
    """A transaction was accepted by a node but returned a non-zero code."""

    def __init__(self, code: int, reason: str) -> None:
        super().__init__(f"tx failed: {reason} with code {code}")
        self.code = code
        self.reason = reason


class InsufficientFeeError(DaemonError):
    """The node reported an insufficient fee and no usable fee could be parsed."""

    def __init__(self, raw_log: str) -> None:
        super().__init__(f"insufficient fee: {raw_log}")
        self.raw_log = raw_log


class TimestampParseError(DaemonError):
    """A block timestamp did not match any of the supported layouts."""

    def __init__(self, value: str) -> None:
        super().__init__(f"could not parse timestamp {value!r}")
        self.value = value