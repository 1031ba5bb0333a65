"""Transaction handlers of the interchain security module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .errors import (
    ERR_DUPLICATED_DOMAINS,
    ERR_INVALID_ANNOUNCE,
    ERR_INVALID_ISM_TYPE,
    ERR_INVALID_MULTISIG_CONFIGURATION,
    ERR_INVALID_OWNER,
    ERR_INVALID_SIGNATURE,
    ERR_MAILBOX_DOES_NOT_EXIST,
    ERR_UNAUTHORIZED,
    ERR_UNEXPECTED_ERROR,
    ERR_UNKNOWN_ISM_ID,
    WrappedError,
)
from .ethsig import decode_eth_hex, encode_eth_hex, eth_signing_hash, recover_address
from .isms import MerkleRootMultisigIsm, MessageIdMultisigIsm, NoopIsm, RoutingIsm
from .keeper import Keeper
from .types import CoreKeeper, ModuleType, Route, announcement_digest, format_address

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LENGTH = 1023
_MAX_ADDRESS_LENGTH = 255


def _bech32_polymod(values: Iterable[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = (checksum & 0x1FFFFFF) << 5 ^ value
        for bit, generator in enumerate(_BECH32_GENERATOR):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(char) >> 5 for char in hrp] + [0] + [ord(char) & 31 for char in hrp]


def _five_to_eight_bits(data: Iterable[int]) -> bytes | None:
    accumulator = 0
    bits = 0
    out = bytearray()
    for value in data:
        accumulator = (accumulator << 5) | value
        bits += 5
        while bits >= 8:
            bits -= 8
            out.append((accumulator >> bits) & 0xFF)
    if bits >= 5 or accumulator & ((1 << bits) - 1):
        return None
    return bytes(out)


def is_bech32_address(text: str) -> bool:
    """Return whether ``text`` is a well-formed bech32 account address."""
    if not text.strip() or not 8 <= len(text) <= _BECH32_MAX_LENGTH:
        return False
    if any(not 33 <= ord(char) <= 126 for char in text):
        return False
    if text.lower() != text and text.upper() != text:
        return False
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + 7 > len(text):
        return False
    hrp, data_part = text[:separator], text[separator + 1:]
    if any(char not in _BECH32_CHARSET for char in data_part):
        return False
    data = [_BECH32_CHARSET.index(char) for char in data_part]
    if _bech32_polymod(_hrp_expand(hrp) + data) != 1:
        return False
    payload = _five_to_eight_bits(data[:-6])
    return payload is not None and 0 < len(payload) <= _MAX_ADDRESS_LENGTH


@dataclass
class Event:
    """A typed event emitted by a handler."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)


class MsgServer:
    """Handles the module's transactions against a :class:`Keeper`.

    Every handler raises a :class:`WrappedError` on failure and records the
    events it emits in :attr:`events`.
    """

    def __init__(self, keeper: Keeper) -> None:
        self.keeper = keeper
        self.events: list[Event] = []

    @property
    def _core(self) -> CoreKeeper:
        core = self.keeper.core_keeper
        if core is None:
            raise ERR_UNEXPECTED_ERROR.wrap("core keeper not set")
        return core

    def _emit(self, name: str, **attributes: Any) -> None:
        self.events.append(Event(name, attributes))

    def _next_id(self, module_type: ModuleType) -> bytes:
        try:
            return self._core.ism_router().next_sequence(module_type)
        except WrappedError:
            raise
        except Exception as exc:
            raise ERR_UNEXPECTED_ERROR.wrap(str(exc)) from exc

    def _ism_exists(self, ism_id: bytes) -> bool:
        try:
            return bool(self._core.ism_exists(ism_id))
        except Exception:
            return False

    def _routing_ism(self, ism_id: bytes, owner: str) -> RoutingIsm:
        try:
            ism = self.keeper.get_ism(ism_id)
        except LookupError:
            raise ERR_UNKNOWN_ISM_ID.wrap(f"ISM {format_address(ism_id)} not found") from None
        if ism.module_type != ModuleType.ROUTING or not isinstance(ism, RoutingIsm):
            raise ERR_INVALID_ISM_TYPE.wrap(f"ISM {format_address(ism_id)} is not a routing ISM")
        if ism.owner != owner:
            raise ERR_UNAUTHORIZED.wrap(
                f"owner {owner} is not the owner of the ism {format_address(ism.id)}"
            )
        return ism

    def create_routing_ism(self, creator: str, routes: Iterable[Route]) -> bytes:
        """Create a routing ISM; domains must be unique and every routed ISM must exist."""
        ism_id = self._next_id(ModuleType.ROUTING)

        accepted: list[Route] = []
        domains: set[int] = set()
        for route in routes:
            if route.domain in domains:
                raise ERR_DUPLICATED_DOMAINS.wrap(
                    f"multiple ISMs for domain {route.domain} not allowed"
                )
            domains.add(route.domain)
            if not self._ism_exists(route.ism):
                raise ERR_UNKNOWN_ISM_ID.wrap(f"ISM {format_address(route.ism)} not found")
            accepted.append(route)

        ism = RoutingIsm(id=ism_id, owner=creator, routes=accepted)
        self.keeper.set_ism(ism)

        self._emit("EventCreateRoutingIsm", ism_id=ism_id, owner=creator)
        for route in ism.routes:
            self._emit(
                "EventSetRoutingIsmDomain",
                owner=creator,
                ism_id=ism_id,
                route_ism_id=route.ism,
                route_domain=route.domain,
            )
        return ism_id

    def update_routing_ism_owner(
        self, ism_id: bytes, owner: str, new_owner: str, renounce_ownership: bool
    ) -> None:
        """Transfer or renounce ownership of a routing ISM."""
        ism = self._routing_ism(ism_id, owner)

        if new_owner and not is_bech32_address(new_owner):
            raise ERR_INVALID_OWNER.wrap("invalid new owner")
        if renounce_ownership and new_owner:
            raise ERR_INVALID_OWNER.wrap(
                "cannot set new owner and renounce ownership at the same time"
            )
        if not renounce_ownership and not new_owner:
            raise ERR_INVALID_OWNER.wrap(
                "cannot set owner to empty address without renouncing ownership"
            )

        ism.owner = new_owner
        self.keeper.set_ism(ism)
        self._emit(
            "EventSetRoutingIsm",
            owner=owner,
            ism_id=ism.id,
            new_owner=new_owner,
            renounce_ownership=renounce_ownership,
        )

    def remove_routing_ism_domain(self, ism_id: bytes, owner: str, domain: int) -> None:
        """Remove the route for ``domain`` from a routing ISM."""
        ism = self._routing_ism(ism_id, owner)
        ism.remove_domain(domain)
        self.keeper.set_ism(ism)
        self._emit(
            "EventRemoveRoutingIsmDomain", owner=owner, ism_id=ism_id, route_domain=domain
        )

    def set_routing_ism_domain(self, ism_id: bytes, owner: str, route: Route) -> None:
        """Add a route to a routing ISM; the routed ISM must exist."""
        ism = self._routing_ism(ism_id, owner)
        if not self._ism_exists(route.ism):
            raise ERR_UNKNOWN_ISM_ID.wrap(f"ISM {format_address(route.ism)} not found")
        ism.set_domain(route)
        self.keeper.set_ism(ism)
        self._emit(
            "EventSetRoutingIsmDomain",
            owner=owner,
            ism_id=ism_id,
            route_ism_id=route.ism,
            route_domain=route.domain,
        )

    def announce_validator(
        self,
        validator: str,
        storage_location: str,
        signature: str,
        mailbox_id: bytes,
        creator: str,
    ) -> None:
        """Record a storage location announced and signed by a validator."""
        if not validator:
            raise ERR_INVALID_ANNOUNCE.wrap("validator cannot be empty")
        if not storage_location:
            raise ERR_INVALID_ANNOUNCE.wrap("storage location cannot be empty")
        if not signature:
            raise ERR_INVALID_ANNOUNCE.wrap("signature cannot be empty")

        try:
            signature_bytes = decode_eth_hex(signature)
        except ValueError:
            raise ERR_INVALID_ANNOUNCE.wrap("invalid signature") from None

        try:
            found = bool(self._core.mailbox_id_exists(mailbox_id))
        except Exception:
            found = False
        if not found:
            raise ERR_MAILBOX_DOES_NOT_EXIST.wrap(
                f"failed to find mailbox with id: {format_address(mailbox_id)}"
            )

        try:
            local_domain = self._core.local_domain(mailbox_id)
        except Exception as exc:
            raise ERR_UNEXPECTED_ERROR.wrap(str(exc)) from exc

        digest = eth_signing_hash(announcement_digest(storage_location, local_domain, mailbox_id))
        try:
            recovered = recover_address(digest, signature_bytes)
        except ValueError as exc:
            raise ERR_INVALID_SIGNATURE.wrap(str(exc)) from exc

        try:
            validator_address = decode_eth_hex(validator)
        except ValueError:
            raise ERR_INVALID_ANNOUNCE.wrap("invalid validator address") from None

        if recovered != validator_address:
            raise ERR_INVALID_SIGNATURE.wrap(
                f"validator {encode_eth_hex(validator_address)} doesn't match signature. "
                f"recovered address: {encode_eth_hex(recovered)}"
            )

        existing = self.keeper.announced_storage_locations(mailbox_id, validator_address)
        if storage_location in existing:
            raise ERR_INVALID_ANNOUNCE.wrap(
                f"validator {validator} already announced storage location {storage_location}"
            )
        self.keeper.add_storage_location(mailbox_id, validator_address, storage_location)

        self._emit(
            "EventAnnounceStorageLocation",
            sender=creator,
            validator=encode_eth_hex(validator_address),
            mailbox_id=mailbox_id,
            storage_location=storage_location,
        )

    def _create_multisig(self, cls: type, event_name: str, creator: str,
                         validators: Iterable[str], threshold: int) -> bytes:
        ism_id = self._next_id(cls.module_type)
        ism = cls(id=ism_id, owner=creator, validators=list(validators), threshold=threshold)
        try:
            ism.validate()
        except ValueError as exc:
            raise ERR_INVALID_MULTISIG_CONFIGURATION.wrap(str(exc)) from exc
        self.keeper.set_ism(ism)
        self._emit(
            event_name,
            ism_id=ism.id,
            owner=ism.owner,
            validators=list(ism.validators),
            threshold=ism.threshold,
        )
        return ism_id

    def create_message_id_multisig_ism(
        self, creator: str, validators: Iterable[str], threshold: int
    ) -> bytes:
        """Create a message-id multisig ISM after validating its configuration."""
        return self._create_multisig(
            MessageIdMultisigIsm, "EventCreateMessageIdMultisigIsm", creator, validators, threshold
        )

    def create_merkle_root_multisig_ism(
        self, creator: str, validators: Iterable[str], threshold: int
    ) -> bytes:
        """Create a merkle-root multisig ISM after validating its configuration."""
        return self._create_multisig(
            MerkleRootMultisigIsm,
            "EventCreateMerkleRootMultisigIsm",
            creator,
            validators,
            threshold,
        )

    def create_noop_ism(self, creator: str) -> bytes:
        """Create an ISM that accepts every message."""
        ism_id = self._next_id(ModuleType.UNUSED)
        self.keeper.set_ism(NoopIsm(id=ism_id, owner=creator))
        self._emit("EventCreateNoopIsm", ism_id=ism_id, owner=creator)
        return ism_id