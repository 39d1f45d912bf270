"""Broadcasting transactions with retry strategies for known failures."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .errors import DaemonError, InsufficientFeeError, TxFailedError
from .tx_builder import TxBuilder
from .tx_response import CosmTxResponse

log = logging.getLogger(__name__)

Outcome = Union[Any, DaemonError]
StrategyAction = Callable[[TxBuilder, Outcome], None]

_U128_MAX = 2**128 - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")


@dataclass
class RetryStrategy:
    """Detects a failure after broadcasting and decides whether to retry.

    ``broadcast_condition`` is checked against a successful response and
    ``simulation_condition`` against an error. ``action`` may adjust the
    builder before the retry. ``max_retries`` of None retries forever.
    """

    broadcast_condition: Callable[[Any], bool]
    simulation_condition: Callable[[DaemonError], bool]
    action: Optional[StrategyAction]
    max_retries: Optional[int]
    reason: str
    current_retries: int = field(default=0)

    def condition_met(self, outcome: Outcome) -> bool:
        """Whether this strategy recognises the broadcast outcome."""
        if isinstance(outcome, DaemonError):
            return self.simulation_condition(outcome)
        return self.broadcast_condition(outcome)

    def can_retry(self) -> bool:
        """Count one retry and report whether it is still allowed."""
        if self.max_retries is None:
            return True
        self.current_retries += 1
        return self.current_retries <= self.max_retries


class TxBroadcaster:
    """Broadcasts a transaction, retrying according to its strategies.

    The signer must offer what ``TxBuilder.build`` needs, plus the
    coroutines ``broadcast_tx(raw)`` and ``average_block_speed()``, the
    latter giving seconds between blocks.
    """

    def __init__(self, strategies: list[RetryStrategy] | None = None) -> None:
        self.strategies: list[RetryStrategy] = list(strategies or [])

    def add_strategy(self, strategy: RetryStrategy) -> "TxBroadcaster":
        """Add a strategy; strategies are tried in the order they were added."""
        self.strategies.append(strategy)
        return self

    async def broadcast(self, tx_builder: TxBuilder, signer: Any) -> Any:
        """Broadcast and return the accepted response, or raise the final error."""
        for strategy in self.strategies:
            strategy.current_retries = 0

        outcome = await _broadcast_once(tx_builder, signer)
        log.info("Awaiting TX inclusion in block...")
        retry = True
        while retry:
            retry = False
            for strategy in self.strategies:
                if strategy.condition_met(outcome) and strategy.can_retry():
                    if strategy.action is not None:
                        strategy.action(tx_builder, outcome)
                    retry = True
                    # Wait a block so that retries do not spam the node.
                    delay = await signer.average_block_speed()
                    log.warning(
                        "Retrying broadcasting TX in %s milliseconds because of %s",
                        int(delay * 1000),
                        strategy.reason,
                    )
                    await asyncio.sleep(delay)
                    outcome = await _broadcast_once(tx_builder, signer)

        if isinstance(outcome, DaemonError):
            raise outcome
        return outcome


async def _broadcast_once(tx_builder: TxBuilder, signer: Any) -> Outcome:
    try:
        raw = await tx_builder.build(signer)
        response = await signer.broadcast_tx(raw)
        log.debug("TX broadcast response: %r", response)
        return assert_broadcast_code_response(response)
    except DaemonError as error:
        return error


def assert_broadcast_code_response(tx_response: Any) -> Any:
    """Return the response when its code is zero, else raise TxFailedError."""
    if tx_response.code == 0:
        return tx_response
    raise TxFailedError(int(tx_response.code), tx_response.raw_log)


def assert_broadcast_code_cosm_response(tx_response: CosmTxResponse) -> CosmTxResponse:
    """Return the response when its code is zero, else raise TxFailedError."""
    if tx_response.code == 0:
        return tx_response
    raise TxFailedError(tx_response.code, tx_response.raw_log)


def has_insufficient_fee(raw_log: str) -> bool:
    """Whether the log reports insufficient fees."""
    return "insufficient fees" in raw_log


def has_account_sequence_error(raw_log: str) -> bool:
    """Whether the log reports an incorrect account sequence."""
    return "incorrect account sequence" in raw_log


def _parse_u128(text: str) -> int | None:
    if not _UNSIGNED.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _U128_MAX else None


def parse_suggested_fee(raw_log: str) -> int | None:
    """Read the required fee, in the paid denomination, from a node log.

    Logs look like ``insufficient fees; got: 14867ujuno required:
    17771ibc/...,444255ujuno: insufficient fee``.
    """
    parts = raw_log.split("required: ")
    if len(parts) != 2:
        return None
    got, required = parts

    got_words = got.split()
    if not got_words:
        return None
    paid = got_words[-1]
    start = next((i for i, char in enumerate(paid) if not char.isnumeric()), None)
    if start is None:
        return None
    denomination = paid[start:]
    log.debug("denom: %s", denomination)

    first_required = required.split(denomination)[0]
    cut = next(
        (i for i, char in reversed(list(enumerate(first_required))) if not char.isnumeric()),
        None,
    )
    if cut is None:
        return None
    suggested = first_required[cut:]
    log.debug("suggested fee: %s", suggested)

    # The leading character is usually the separator before the amount.
    parsed = _parse_u128(suggested)
    return parsed if parsed is not None else _parse_u128(suggested[1:])


def _apply_suggested_fee(tx_builder: TxBuilder, outcome: Outcome) -> None:
    if isinstance(outcome, DaemonError):
        raise ValueError("the insufficient fee action needs a broadcast response")
    new_fee = parse_suggested_fee(outcome.raw_log)
    if new_fee is None:
        raise InsufficientFeeError(outcome.raw_log)
    tx_builder.fee_amount(new_fee)


def insufficient_fee_strategy() -> RetryStrategy:
    """Retry once with the fee the node says is required."""
    return RetryStrategy(
        broadcast_condition=lambda response: has_insufficient_fee(response.raw_log),
        simulation_condition=lambda error: False,
        action=_apply_suggested_fee,
        max_retries=1,
        reason="an insufficient fee error",
    )


def account_sequence_strategy() -> RetryStrategy:
    """Retry forever while the account sequence is reported as wrong."""
    return RetryStrategy(
        broadcast_condition=lambda response: has_account_sequence_error(response.raw_log),
        simulation_condition=lambda error: has_account_sequence_error(str(error)),
        action=None,
        max_retries=None,
        reason="an account sequence error",
    )