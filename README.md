# hyperism

Interchain security modules (ISMs) for verifying cross-chain messages.

An ISM decides whether an incoming message may be processed. This package
provides four kinds:

- **`NoopIsm`** – accepts every message.
- **`MessageIdMultisigIsm`** – a threshold of validators must have signed a
  checkpoint over the message ID.
- **`MerkleRootMultisigIsm`** – a threshold of validators must have signed a
  checkpoint whose root is reached from the message ID through a Merkle
  branch; the message index may not exceed the signed checkpoint index.
- **`RoutingIsm`** – names another ISM for each origin domain. Its own
  `verify` always raises; routed verification is done by
  `keeper.RoutingIsmHandler`, so routing ISMs may be nested.

Around these sit an in-memory `Keeper` that stores ISMs and validator
storage-location announcements, a `MsgServer` that creates and administers
ISMs, and genesis import and export.

## Installation

```
pip install hyperism
```

To run the test suite:

```
pip install "hyperism[test]"
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `hyperism.errors` | `RegisteredError` (an error kind with codespace and code) and `WrappedError` (what `RegisteredError.wrap(message)` returns; its text reads `"<message>: <description>"`), plus the module's `ERR_*` kinds |
| `hyperism.ethsig` | `keccak256`, `eth_signing_hash`, `encode_eth_hex`, `decode_eth_hex`, `private_key_to_address`, `sign`, `recover_address` |
| `hyperism.types` | `ModuleType`, the `MessageLike` and `CoreKeeper` protocols, `Route`, `StorageLocationEntry`, `GenesisState`, `announcement_digest`, and the 32-byte address helpers `internal_id`, `format_address`, `parse_address` |
| `hyperism.multisig` | `MessageIdMultisigMetadata`, `MerkleRootMultisigMetadata`, `domain_hash`, `checkpoint_digest`, `verify_multisig`, `validate_new_multisig` |
| `hyperism.isms` | `NoopIsm`, `MessageIdMultisigIsm`, `MerkleRootMultisigIsm`, `RoutingIsm` |
| `hyperism.keeper` | `Keeper` (storage, verification, queries, genesis) and `RoutingIsmHandler` |
| `hyperism.msg_server` | `MsgServer`, the `Event` records it emits, and `is_bech32_address` |
| `hyperism.cli` | the `hyperism` command |

Malformed input such as bad hex, short metadata or an invalid validator set
raises `ValueError`; a missing ISM or storage location raises `LookupError`;
the `MsgServer` handlers and `RoutingIsmHandler` raise `WrappedError`.

## Signatures

`ethsig.sign(digest, private_key)` signs a 32-byte digest deterministically
on secp256k1 and returns 65 bytes `r || s || v`, with a low `s` and `v` of 27
or 28. `recover_address(digest, signature)` returns the signer's 20-byte
address and accepts only `v` of 27 or 28.

## Multisig metadata

Message-ID multisig metadata:

```
[ 0:32]  origin merkle tree hook
[32:64]  signed checkpoint root
[64:68]  signed checkpoint index (big endian)
[68:  ]  validator signatures, 65 bytes each
```

Merkle-root multisig metadata:

```
[   0:  32]  origin merkle tree hook
[  32:  36]  index of the message in the tree
[  36:  68]  signed checkpoint message ID
[  68:1092]  merkle proof (32 hashes of 32 bytes)
[1092:1096]  signed checkpoint index
[1096:    ]  validator signatures, 65 bytes each
```

Both classes parse with `from_bytes`, serialise with `to_bytes`, and
`digest(message)` gives the 32-byte value validators sign. A message is any
object with an `origin` attribute and an `id()` method returning 32 bytes.

```python
from hyperism.multisig import MessageIdMultisigMetadata

metadata = MessageIdMultisigMetadata(merkle_index=7)
raw = metadata.to_bytes()
assert MessageIdMultisigMetadata.from_bytes(raw) == metadata
```

Metadata shorter than the fixed header, or whose signature section is not a
whole number of 65-byte signatures, is rejected.

## Validator sets

A multisig configuration is valid only if the threshold is above zero, there
are at least as many validators as the threshold, the validator strings are
sorted ascending, each is a `0x`-prefixed 20-byte hex address, and none is
repeated:

```python
from hyperism.isms import MessageIdMultisigIsm

ism = MessageIdMultisigIsm(
    validators=[
        "0xa05b6a0aa112b61a7aa16c19cac27d970692995e",
        "0xb05b6a0aa112b61a7aa16c19cac27d970692995e",
    ],
    threshold=2,
)
ism.validate()  # raises ValueError if the configuration is invalid
```

Signatures must appear in the same order as their validators;
`verify_multisig` checks the first `threshold` signatures, walking the
validator list once, and returns `False` as soon as one matches no remaining
validator.

## Keeper and message server

`Keeper` keeps ISMs by the internal id held in the last 8 bytes of their
32-byte id, and storage locations per mailbox and validator in the order they
were added. `Keeper.set_core_keeper` takes an object satisfying the
`CoreKeeper` protocol (local domain and existence of mailboxes, existence of
ISMs, an ISM router with `register_module` and `next_sequence`, and top-level
`verify`) and registers the keeper and a `RoutingIsmHandler` with its router.

`MsgServer(keeper)` offers `create_noop_ism`,
`create_message_id_multisig_ism`, `create_merkle_root_multisig_ism`,
`create_routing_ism`, `set_routing_ism_domain`, `remove_routing_ism_domain`,
`update_routing_ism_owner` and `announce_validator`, and appends an `Event`
to `MsgServer.events` for each change. `set_routing_ism_domain` adds a route
only for a domain that has none; an existing route is kept unchanged. A new
owner must be a valid bech32 address.

## Command line

The `hyperism` command builds the module's transaction messages and prints
each as JSON with an `@type` field: `announce`, `create-message-id-multisig`,
`create-merkle-root-multisig`, `create-noop`, `create-routing` (routes given
with `--routes` as a JSON array), `set-routing-ism-domain`,
`remove-routing-ism-domain` and `update-routing-ism-owner` (with
`--new-owner` and `--renounce-ownership`; renouncing asks for confirmation
unless `--yes` is given). Every subcommand needs `--from` for the sender's
address. Run

```
hyperism --help
```

to list the subcommands and their arguments.

## What it does not do

- The command only prints messages: it does not sign, broadcast or query
  anything, and it has no query commands.
- `Keeper` holds its state in memory only; nothing is persisted.
- Mailboxes, local domains and the ISM router are not provided; the caller
  supplies them through the `CoreKeeper` protocol.