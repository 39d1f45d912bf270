"""Assembling, simulating and signing transactions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

from .errors import DaemonError

log = logging.getLogger(__name__)

GAS_BUFFER = 1.3
BUFFER_THRESHOLD = 200_000
SMALL_GAS_BUFFER = 1.4
DEFAULT_MEMO = "Tx committed using cwtxkit ⚙️"

_U32_MASK = 0xFFFF_FFFF
_MAX_CHAIN_ID_LEN = 50
_DENOM = re.compile(r"[a-zA-Z][a-zA-Z0-9/:._-]{2,127}")
_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


@dataclass(frozen=True)
class SigningAccount:
    """Account number and current sequence of a signing account."""

    account_number: int
    sequence: int


@dataclass
class TxBody:
    """The body of a transaction: its messages, memo and timeout height."""

    messages: list[Any] = field(default_factory=list)
    memo: str = DEFAULT_MEMO
    timeout_height: int = 0


@dataclass(frozen=True)
class Fee:
    """A transaction fee in a single denomination with its gas limit."""

    amount: int
    denom: str
    gas_limit: int
    granter: str | None = None


def _bech32_polymod(values: Sequence[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATORS):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _validate_account_id(address: str) -> str:
    """Check that ``address`` is a well-formed bech32 account address."""
    if address.lower() != address and address.upper() != address:
        raise DaemonError(f"invalid account id {address!r}: mixed case")
    lowered = address.lower()
    hrp, sep, data = lowered.rpartition("1")
    if not sep or not hrp or len(data) < 6:
        raise DaemonError(f"invalid account id {address!r}")
    if any(not 33 <= ord(char) <= 126 for char in hrp):
        raise DaemonError(f"invalid account id {address!r}: bad prefix")
    if any(char not in _BECH32_CHARSET for char in data):
        raise DaemonError(f"invalid account id {address!r}: bad character")
    expanded = [ord(char) >> 5 for char in hrp] + [0] + [ord(char) & 31 for char in hrp]
    values = expanded + [_BECH32_CHARSET.index(char) for char in data]
    if _bech32_polymod(values) != 1:
        raise DaemonError(f"invalid account id {address!r}: bad checksum")
    return address


def _validate_chain_id(chain_id: str) -> str:
    if not chain_id or len(chain_id) > _MAX_CHAIN_ID_LEN:
        raise DaemonError(f"invalid chain id {chain_id!r}")
    if any(not 32 < ord(char) < 127 for char in chain_id):
        raise DaemonError(f"invalid chain id {chain_id!r}")
    return chain_id


def get_fee_from_gas(
    gas: int,
    gas_price: float,
    gas_buffer: float | None = None,
    min_gas: int = 0,
) -> tuple[int, int]:
    """Return (gas limit, fee amount) for a simulated gas usage.

    A buffer is applied to cover signature verification: ``gas_buffer`` when
    given, otherwise a larger one for small transactions.
    """
    if gas_buffer is not None:
        expected = gas * gas_buffer
    elif gas < BUFFER_THRESHOLD:
        expected = gas * SMALL_GAS_BUFFER
    else:
        expected = gas * GAS_BUFFER
    expected = max(float(min_gas), expected)
    fee_amount = expected * (gas_price + 0.00001)
    return max(int(expected), 0), max(int(fee_amount), 0)


@dataclass
class TxBuilder:
    """Builds a raw transaction and signs it with a wallet.

    The wallet is any object providing ``signing_account()`` and
    ``calculate_gas(body, sequence, account_number)`` coroutines,
    ``gas_price()``, ``build_fee(amount, gas_limit)``, a ``chain_id``
    attribute and ``sign(body=, fee=, sequence=, account_number=, chain_id=)``.
    """

    body: TxBody
    fee_override: int | None = None
    gas_override: int | None = None
    sequence_override: int | None = None
    gas_buffer: float | None = None
    min_gas: int = 0

    def fee_amount(self, amount: int) -> "TxBuilder":
        """Use a fixed fee amount for the transaction."""
        self.fee_override = amount
        return self

    def gas_limit(self, limit: int) -> "TxBuilder":
        """Use a fixed gas limit for the transaction."""
        self.gas_override = limit
        return self

    def sequence(self, sequence: int) -> "TxBuilder":
        """Use this sequence instead of the one reported by the node."""
        self.sequence_override = sequence
        return self

    @staticmethod
    def build_body(msgs: Sequence[Any], memo: str | None = None, timeout: int = 0) -> TxBody:
        """Build a transaction body; the timeout height is kept to 32 bits."""
        return TxBody(
            messages=list(msgs),
            memo=DEFAULT_MEMO if memo is None else memo,
            timeout_height=timeout & _U32_MASK,
        )

    @staticmethod
    def build_fee(
        amount: int, denom: str, gas_limit: int, fee_granter: str | None = None
    ) -> Fee:
        """Build a fee, validating the denomination and the granter address."""
        if amount < 0:
            raise DaemonError(f"fee amount must not be negative, got {amount}")
        if not _DENOM.fullmatch(denom):
            raise DaemonError(f"invalid denom {denom!r}")
        granter = None if fee_granter is None else _validate_account_id(fee_granter)
        return Fee(amount=amount, denom=denom, gas_limit=gas_limit, granter=granter)

    async def _account(self, wallet: Any) -> tuple[int, int]:
        account = await wallet.signing_account()
        sequence = (
            account.sequence if self.sequence_override is None else self.sequence_override
        )
        return account.account_number, sequence

    async def simulate(self, wallet: Any) -> int:
        """Return the gas the node's simulation says the transaction needs."""
        account_number, sequence = await self._account(wallet)
        return await wallet.calculate_gas(self.body, sequence, account_number)

    async def build(self, wallet: Any) -> Any:
        """Sign the transaction and return the raw signed transaction.

        When fee or gas limit is missing, the transaction is simulated and
        the gas limit found is kept for later builds.
        """
        account_number, sequence = await self._account(wallet)

        if self.fee_override is not None and self.gas_override is not None:
            tx_fee, gas_limit = self.fee_override, self.gas_override
            log.debug("Using pre-defined fee and gas limits: %s, %s", tx_fee, gas_limit)
        else:
            simulated = await wallet.calculate_gas(self.body, sequence, account_number)
            log.debug("Simulated gas needed %s", simulated)
            gas_limit, tx_fee = get_fee_from_gas(
                simulated, wallet.gas_price(), self.gas_buffer, self.min_gas
            )
            log.debug("Calculated fee needed: %s", tx_fee)
            self.gas_override = gas_limit

        fee = wallet.build_fee(tx_fee, gas_limit)
        log.debug(
            "submitting TX: fee: %s account_nr: %s sequence: %s",
            fee,
            account_number,
            sequence,
        )
        chain_id = _validate_chain_id(wallet.chain_id)
        return wallet.sign(
            body=self.body,
            fee=fee,
            sequence=sequence,
            account_number=account_number,
            chain_id=chain_id,
        )