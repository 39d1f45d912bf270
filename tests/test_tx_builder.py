import pytest

from cwtxkit.errors import DaemonError
from cwtxkit.tx_builder import (
    BUFFER_THRESHOLD,
    DEFAULT_MEMO,
    GAS_BUFFER,
    SMALL_GAS_BUFFER,
    Fee,
    SigningAccount,
    TxBody,
    TxBuilder,
    get_fee_from_gas,
)

VALID_ADDRESS = "juno16g2rahf5846rxzp3fwlswy08fz8ccuwk03k57y"


class FakeWallet:
    def __init__(self, gas=100_000, price=0.025, chain_id="juno-1", sequence=7):
        self.gas = gas
        self.price = price
        self.chain_id = chain_id
        self.account = SigningAccount(account_number=3, sequence=sequence)
        self.simulations = []
        self.fees = []
        self.signed = []

    async def signing_account(self):
        return self.account

    async def calculate_gas(self, body, sequence, account_number):
        self.simulations.append((body, sequence, account_number))
        if isinstance(self.gas, Exception):
            raise self.gas
        return self.gas

    def gas_price(self):
        return self.price

    def build_fee(self, amount, gas_limit):
        fee = TxBuilder.build_fee(amount, "ujuno", gas_limit, None)
        self.fees.append(fee)
        return fee

    def sign(self, **doc):
        self.signed.append(doc)
        return ("raw", doc["sequence"], doc["fee"])


def test_setters_chain_and_store_values():
    builder = TxBuilder(TxBody())
    result = builder.fee_amount(10).gas_limit(20).sequence(30)
    assert result is builder
    assert (builder.fee_override, builder.gas_override, builder.sequence_override) == (
        10,
        20,
        30,
    )


def test_build_body_uses_default_memo():
    body = TxBuilder.build_body(["msg"], None, 100)
    assert body.memo == DEFAULT_MEMO
    assert body.messages == ["msg"]
    assert body.timeout_height == 100


def test_build_body_keeps_given_memo_and_truncates_timeout():
    body = TxBuilder.build_body([], "hello", 2**32 + 100)
    assert body.memo == "hello"
    assert body.timeout_height == 100


def test_build_fee_without_granter():
    fee = TxBuilder.build_fee(500, "ujuno", 1000, None)
    assert fee == Fee(amount=500, denom="ujuno", gas_limit=1000, granter=None)


def test_build_fee_with_valid_granter():
    fee = TxBuilder.build_fee(500, "ujuno", 1000, VALID_ADDRESS)
    assert fee.granter == VALID_ADDRESS


@pytest.mark.parametrize("granter", ["not-an-address", VALID_ADDRESS[:-1] + "q", "juno1"])
def test_build_fee_rejects_bad_granter(granter):
    with pytest.raises(DaemonError):
        TxBuilder.build_fee(500, "ujuno", 1000, granter)


@pytest.mark.parametrize("denom", ["", "1abc", "ab", "u juno"])
def test_build_fee_rejects_bad_denom(denom):
    with pytest.raises(DaemonError):
        TxBuilder.build_fee(1, denom, 1000, None)


def test_small_gas_uses_small_buffer():
    gas = BUFFER_THRESHOLD // 2
    assert get_fee_from_gas(gas, 0.1) == get_fee_from_gas(gas, 0.1, SMALL_GAS_BUFFER, 0)


def test_large_gas_uses_default_buffer():
    gas = BUFFER_THRESHOLD * 2
    assert get_fee_from_gas(gas, 0.1) == get_fee_from_gas(gas, 0.1, GAS_BUFFER, 0)


def test_min_gas_is_a_floor():
    gas_limit, _ = get_fee_from_gas(10, 0.1, None, 500_000)
    assert gas_limit == 500_000


def test_fee_grows_with_price():
    _, cheap = get_fee_from_gas(300_000, 0.01)
    _, dear = get_fee_from_gas(300_000, 1.0)
    assert dear > cheap
    gas_limit, _ = get_fee_from_gas(300_000, 0.01)
    assert gas_limit >= 300_000


@pytest.mark.asyncio
async def test_simulate_uses_sequence_override():
    wallet = FakeWallet(gas=1234)
    builder = TxBuilder(TxBody()).sequence(42)
    assert await builder.simulate(wallet) == 1234
    assert wallet.simulations[0][1:] == (42, 3)


@pytest.mark.asyncio
async def test_build_simulates_and_remembers_gas_limit():
    wallet = FakeWallet(gas=100_000, price=0.025)
    builder = TxBuilder(TxBody())
    raw = await builder.build(wallet)
    expected_gas, expected_fee = get_fee_from_gas(100_000, 0.025)
    assert builder.gas_override == expected_gas
    assert wallet.fees[0].amount == expected_fee
    assert wallet.fees[0].gas_limit == expected_gas
    assert raw[1] == 7
    assert wallet.signed[0]["chain_id"] == "juno-1"
    assert wallet.signed[0]["account_number"] == 3


@pytest.mark.asyncio
async def test_build_with_fixed_fee_and_gas_skips_simulation():
    wallet = FakeWallet()
    builder = TxBuilder(TxBody()).fee_amount(77).gas_limit(88)
    await builder.build(wallet)
    assert wallet.simulations == []
    assert wallet.fees[0].amount == 77
    assert wallet.fees[0].gas_limit == 88


@pytest.mark.asyncio
async def test_build_rejects_empty_chain_id():
    wallet = FakeWallet(chain_id="")
    builder = TxBuilder(TxBody()).fee_amount(1).gas_limit(1)
    with pytest.raises(DaemonError):
        await builder.build(wallet)


@pytest.mark.asyncio
async def test_build_propagates_simulation_error():
    wallet = FakeWallet(gas=DaemonError("simulation failed"))
    with pytest.raises(DaemonError, match="simulation failed"):
        await TxBuilder(TxBody()).build(wallet)