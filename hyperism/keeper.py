"""State keeper of the interchain security module and the routing ISM handler."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Union

from .errors import ERR_INVALID_ISM_TYPE, ERR_NO_ROUTE_FOUND
from .ethsig import decode_eth_hex, encode_eth_hex
from .isms import MerkleRootMultisigIsm, MessageIdMultisigIsm, NoopIsm, RoutingIsm
from .types import (
    CoreKeeper,
    GenesisState,
    MessageLike,
    ModuleType,
    StorageLocationEntry,
    format_address,
    internal_id,
    parse_address,
)

_ISM_CLASSES = {
    cls.type_url: cls
    for cls in (NoopIsm, MessageIdMultisigIsm, MerkleRootMultisigIsm, RoutingIsm)
}

_StorageKey = tuple[int, bytes, int]
_AddressArg = Union[bytes, str]


def _not_found(key: int) -> LookupError:
    return LookupError(f"collections: not found: key '{key}' of type <nil>")


def _mailbox_key(mailbox_id: _AddressArg) -> int:
    if isinstance(mailbox_id, str):
        mailbox_id = parse_address(mailbox_id)
    return internal_id(mailbox_id)


def _validator_bytes(validator: _AddressArg) -> bytes:
    if isinstance(validator, str):
        return decode_eth_hex(validator) if validator else b""
    return bytes(validator)


def _storage_order(key: _StorageKey) -> tuple[int, int, bytes, int]:
    # Matches the encoded key order: the validator bytes carry a length prefix.
    mailbox, validator, index = key
    return mailbox, len(validator), validator, index


class Keeper:
    """Holds the core ISMs and the validators' announced storage locations.

    The keeper itself verifies messages for the noop and multisig ISMs; the
    routing ISM is served by a :class:`RoutingIsmHandler` bound to it.
    """

    def __init__(self) -> None:
        self._isms: dict[int, Any] = {}
        self._storage_locations: dict[_StorageKey, str] = {}
        self.core_keeper: CoreKeeper | None = None

    def set_core_keeper(self, core_keeper: CoreKeeper) -> None:
        """Attach the core keeper and register the ISM handlers with its router."""
        if self.core_keeper is not None:
            raise RuntimeError("core keeper already set")
        self.core_keeper = core_keeper

        router = core_keeper.ism_router()
        router.register_module(ModuleType.UNUSED, self)
        router.register_module(ModuleType.MERKLE_ROOT_MULTISIG, self)
        router.register_module(ModuleType.MESSAGE_ID_MULTISIG, self)
        router.register_module(ModuleType.ROUTING, RoutingIsmHandler(self))

    # ISM storage

    def get_ism(self, ism_id: bytes) -> Any:
        """Return a copy of the stored ISM; raise LookupError if there is none."""
        key = internal_id(ism_id)
        try:
            return copy.deepcopy(self._isms[key])
        except KeyError:
            raise _not_found(key) from None

    def set_ism(self, ism: Any) -> None:
        """Store ``ism`` under its id, replacing any ISM already there."""
        self._isms[internal_id(ism.id)] = copy.deepcopy(ism)

    def verify(self, ism_id: bytes, metadata: bytes, message: MessageLike) -> bool:
        """Check whether ``metadata`` proves ``message`` under the ISM ``ism_id``."""
        return self.get_ism(ism_id).verify(metadata, message)

    def exists(self, ism_id: bytes) -> bool:
        """Return whether an ISM with ``ism_id`` is stored."""
        return internal_id(ism_id) in self._isms

    # storage locations

    def _locations(self, mailbox: int, validator: bytes) -> list[str]:
        entries = sorted(
            (index, location)
            for (box, who, index), location in self._storage_locations.items()
            if box == mailbox and who == validator
        )
        return [location for _, location in entries]

    def add_storage_location(
        self, mailbox_id: _AddressArg, validator: _AddressArg, location: str
    ) -> int:
        """Append a storage location for a validator; return its index."""
        mailbox = _mailbox_key(mailbox_id)
        who = _validator_bytes(validator)
        index = len(self._locations(mailbox, who))
        self._storage_locations[(mailbox, who, index)] = location
        return index

    def announced_storage_locations(
        self, mailbox_id: _AddressArg, validator_address: _AddressArg
    ) -> list[str]:
        """Return every storage location the validator announced, oldest first."""
        return self._locations(_mailbox_key(mailbox_id), _validator_bytes(validator_address))

    def latest_announced_storage_location(
        self, mailbox_id: _AddressArg, validator_address: _AddressArg
    ) -> str:
        """Return the most recently announced storage location of a validator."""
        locations = self.announced_storage_locations(mailbox_id, validator_address)
        if not locations:
            raise LookupError("invalid iterator: no storage location announced")
        return locations[-1]

    # queries

    def isms(self) -> list[tuple[str, Any]]:
        """Return ``(type_url, ism)`` for every stored ISM, ordered by id."""
        return [
            (ism.type_url, copy.deepcopy(ism))
            for _, ism in sorted(self._isms.items(), key=lambda item: item[0])
        ]

    def ism(self, ism_id: str) -> tuple[str, Any]:
        """Return ``(type_url, ism)`` for the ISM given by its hex id."""
        try:
            address = parse_address(ism_id)
        except ValueError as exc:
            raise ValueError(f"invalid hex address {ism_id}, {exc}") from exc
        try:
            found = self.get_ism(address)
        except LookupError:
            raise LookupError(f"ism {ism_id} not found") from None
        return found.type_url, found

    # genesis

    def init_genesis(self, state: GenesisState | None) -> None:
        """Load ISMs and storage locations from a genesis state."""
        if state is None or state.isms is None:
            return

        loaded = []
        for type_url, ism in state.isms:
            cls = _ISM_CLASSES.get(type_url)
            if cls is None or not isinstance(ism, cls):
                raise ValueError(f"unsupported type {type_url}")
            loaded.append(ism)

        for ism in loaded:
            self.set_ism(ism)

        for entry in state.validator_storage_locations:
            validator = decode_eth_hex(entry.validator_address)
            key = (entry.mailbox_id, validator, entry.index)
            self._storage_locations[key] = entry.storage_location

    def export_genesis(self) -> GenesisState:
        """Return the module's state as a genesis state."""
        locations = [
            StorageLocationEntry(
                mailbox_id=mailbox,
                validator_address=encode_eth_hex(validator),
                index=index,
                storage_location=location,
            )
            for (mailbox, validator, index), location in sorted(
                self._storage_locations.items(), key=lambda item: _storage_order(item[0])
            )
        ]
        return GenesisState(isms=self.isms(), validator_storage_locations=locations)


@dataclass
class RoutingIsmHandler:
    """Verifies messages for routing ISMs by delegating to the ISM routed for the origin."""

    keeper: Keeper

    def verify(self, ism_id: bytes, metadata: bytes, message: MessageLike) -> bool:
        """Verify ``message`` with the ISM the routing ISM names for its origin."""
        ism = self.keeper.get_ism(ism_id)
        if not isinstance(ism, RoutingIsm):
            raise ERR_INVALID_ISM_TYPE.wrap(f"ISM {format_address(ism_id)} is not a routing ISM")

        routed = ism.get_ism(message.origin)
        if routed is None:
            raise ERR_NO_ROUTE_FOUND.wrap(f"no route found for domain {message.origin}")

        if self.keeper.core_keeper is None:
            raise RuntimeError("core keeper not set")
        return self.keeper.core_keeper.verify(routed, metadata, message)

    def exists(self, ism_id: bytes) -> bool:
        """Return whether an ISM with ``ism_id`` is stored."""
        return self.keeper.exists(ism_id)