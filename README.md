# cwtxkit

Tools for building, broadcasting and reading transactions on CosmWasm chains.
The package has no dependencies outside the standard library.

## Modules

- `cwtxkit.tx_builder`
  - `TxBuilder` holds a `TxBody` and can take an optional fixed fee (`fee_amount`),
    gas limit (`gas_limit`) and sequence (`sequence`). Each setter returns the builder,
    so calls can be chained.
  - `TxBuilder.build_body(msgs, memo, timeout)` makes a `TxBody`. Without a memo it
    uses a default one, and it keeps only the low 32 bits of the timeout height.
  - `TxBuilder.build_fee(amount, denom, gas_limit, fee_granter)` makes a `Fee`. It
    checks the denomination and, when a granter is given, checks that the granter is a
    valid bech32 address. It raises `DaemonError` when a check fails.
  - `TxBuilder.simulate(wallet)` and `TxBuilder.build(wallet)` are coroutines. `build`
    uses the fixed fee and gas limit when both are set. Otherwise it simulates the
    transaction, works out the gas limit and fee with `get_fee_from_gas`, and keeps
    that gas limit for later builds. It then asks the wallet to sign.
  - `get_fee_from_gas(gas, gas_price, gas_buffer=None, min_gas=0)` returns
    `(gas_limit, fee_amount)`. The buffer applied is `gas_buffer` when it is given.
    Without it, the buffer is 1.4 below 200,000 gas and 1.3 from there on. The result
    is never lower than `min_gas`.
- `cwtxkit.broadcaster`
  - `TxBroadcaster` broadcasts a transaction and retries it while one of its
    `RetryStrategy` objects recognises the outcome and still has retries left.
  - `insufficient_fee_strategy()` retries once, using the fee that the node reports as
    required. `account_sequence_strategy()` retries for as long as the node reports an
    incorrect account sequence.
  - The helpers `has_insufficient_fee`, `has_account_sequence_error`,
    `parse_suggested_fee`, `assert_broadcast_code_response` and
    `assert_broadcast_code_cosm_response` are also public.
- `cwtxkit.tx_response`
  - `CosmTxResponse` can be built from a node's raw response mapping with
    `CosmTxResponse.from_raw`.
  - Its lookup methods are `get_attribute_from_logs`, `get_events`, `index_events`,
    `data_binary`, `event_attr_value` and `event_attr_values`.
    - `event_attr_value` raises `LookupError` when no attribute matches.
    - `get_events` reads from the logs and falls back to the raw `events` when the logs
      hold no event of that type.
  - The related types are `TxResultBlockMsg`, `TxResultBlockEvent`,
    `TxResultBlockAttribute`, `Event` and `EventAttribute`.
  - `parse_timestamp` reads the timestamp layouts that nodes return and gives back a
    UTC `datetime`.
- `cwtxkit.snapshots`
  - `parse_storage` decodes raw `(key, value)` byte pairs to text and replaces
    invalid UTF-8.
- `cwtxkit.errors`
  - `DaemonError` is the base class.
  - `TxFailedError` carries `code` and `reason`.
  - `InsufficientFeeError` carries `raw_log`.
  - `TimestampParseError` carries `value`.

## Installation

```
pip install .
```

Install with the `test` extra to run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from cwtxkit.broadcaster import has_insufficient_fee, parse_suggested_fee

raw_log = ("insufficient fees; got: 14867ujuno required: "
           "17771ibc/ABC,444255ujuno: insufficient fee")
assert has_insufficient_fee(raw_log)
assert parse_suggested_fee(raw_log) == 444255
```

Broadcasting with retries:

```python
from cwtxkit.broadcaster import (
    TxBroadcaster, account_sequence_strategy, insufficient_fee_strategy,
)
from cwtxkit.tx_builder import TxBuilder


async def send(msgs, signer):
    builder = TxBuilder(TxBuilder.build_body(msgs, None, 0))
    broadcaster = (
        TxBroadcaster()
        .add_strategy(insufficient_fee_strategy())
        .add_strategy(account_sequence_strategy())
    )
    return await broadcaster.broadcast(builder, signer)
```

### How retries work

1. The transaction is broadcast once.
2. The strategies are checked in the order they were added. When a strategy's
   condition matches and its retry limit allows another try:
   - its action, if it has one, adjusts the builder;
   - the broadcaster waits one average block time;
   - the transaction is broadcast again;
   - the remaining strategies are then checked against the new outcome.
3. The whole pass repeats until no strategy applies.
4. At the end, the last error is raised, or the accepted response is returned.

Retry counters are reset at the start of each `broadcast`.

## What you supply

This package does not talk to a node or hold keys. You pass in an object that does
both: the `wallet` or `signer`. It must provide:

- `signing_account()`, a coroutine returning a `SigningAccount`;
- `calculate_gas(body, sequence, account_number)`, a coroutine;
- `gas_price()`;
- `build_fee(amount, gas_limit)`;
- a `chain_id` attribute;
- `sign(body=..., fee=..., sequence=..., account_number=..., chain_id=...)`.

For broadcasting it also needs two coroutines:

- `broadcast_tx(raw)`, which returns a response with `code` and `raw_log`;
- `average_block_speed()`, which returns the time between blocks in seconds.