"""Core types, keys and helpers of the interchain security module."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable

from .errors import CODESPACE
from .ethsig import decode_eth_hex, encode_eth_hex, keccak256

SUBMODULE_NAME = CODESPACE
SUBMODULE_ID = 1

ISMS_KEY = bytes([SUBMODULE_ID, 0])
STORAGE_LOCATIONS_KEY = bytes([SUBMODULE_ID, 2])

TYPE_URL_PREFIX = "/hyperlane.core.interchain_security.v1."
ISM_INTERFACE_NAME = (
    "hyperlane.core.interchain_security.v1.HyperlaneInterchainSecurityModule"
)

ADDRESS_LENGTH = 32


class ModuleType(IntEnum):
    """Interchain security module types defined by the Hyperlane spec."""

    UNUSED = 0
    ROUTING = 1
    AGGREGATION = 2
    LEGACY_MULTISIG = 3
    MERKLE_ROOT_MULTISIG = 4
    MESSAGE_ID_MULTISIG = 5
    NULL = 6
    CCIP_READ = 7
    ARB_L2_TO_L1 = 8
    WEIGHTED_MERKLE_ROOT_MULTISIG = 9
    WEIGHTED_MESSAGE_ID_MULTISIG = 10
    OP_L2_TO_L1 = 11


@runtime_checkable
class MessageLike(Protocol):
    """What an ISM needs from a message: its origin domain and its id."""

    origin: int

    def id(self) -> bytes: ...


class _IsmRouter(Protocol):
    def register_module(self, module_type: int, handler: Any) -> None: ...

    def next_sequence(self, module_type: int) -> bytes: ...


@runtime_checkable
class CoreKeeper(Protocol):
    """The services this module expects from the core module."""

    def local_domain(self, mailbox_id: bytes) -> int: ...

    def mailbox_id_exists(self, mailbox_id: bytes) -> bool: ...

    def ism_exists(self, ism_id: bytes) -> bool: ...

    def ism_router(self) -> _IsmRouter: ...

    def verify(self, ism_id: bytes, metadata: bytes, message: MessageLike) -> bool: ...


def _check_address(address: bytes) -> bytes:
    address = bytes(address)
    if len(address) != ADDRESS_LENGTH:
        raise ValueError(
            f"invalid hex address length: expected {ADDRESS_LENGTH} bytes, got {len(address)}"
        )
    return address


def internal_id(address: bytes) -> int:
    """Return the internal sequence number held in the last 8 bytes of an address."""
    return int.from_bytes(_check_address(address)[24:], "big")


def format_address(address: bytes) -> str:
    """Format a 32-byte address as 0x-prefixed lower-case hex."""
    return encode_eth_hex(_check_address(address))


def parse_address(text: str) -> bytes:
    """Parse a 0x-prefixed hex string into a 32-byte address."""
    return _check_address(decode_eth_hex(text))


@dataclass(frozen=True)
class Route:
    """Routes messages from ``domain`` to the ISM ``ism``."""

    domain: int
    ism: bytes


@dataclass(frozen=True)
class StorageLocationEntry:
    """A validator's announced storage location as held in genesis."""

    mailbox_id: int
    validator_address: str
    index: int
    storage_location: str


@dataclass
class GenesisState:
    """Exported state of the module: its ISMs and announced storage locations."""

    isms: list[Any] = field(default_factory=list)
    validator_storage_locations: list[StorageLocationEntry] = field(default_factory=list)


def announcement_digest(storage_location: str, domain_id: int, mailbox: bytes) -> bytes:
    """Return the digest a validator signs to announce a storage location."""
    domain_hash = keccak256(
        struct.pack(">I", domain_id) + bytes(mailbox) + b"HYPERLANE_ANNOUNCEMENT"
    )
    return keccak256(domain_hash + storage_location.encode())