"""The core interchain security modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from .errors import ERR_UNEXPECTED_ERROR
from .multisig import (
    MerkleRootMultisigMetadata,
    MessageIdMultisigMetadata,
    validate_new_multisig,
    verify_multisig,
)
from .types import TYPE_URL_PREFIX, MessageLike, ModuleType, Route

_ZERO_ADDRESS = bytes(32)


@dataclass
class NoopIsm:
    """An ISM that accepts every message."""

    id: bytes = _ZERO_ADDRESS
    owner: str = ""

    module_type: ClassVar[ModuleType] = ModuleType.UNUSED
    type_url: ClassVar[str] = TYPE_URL_PREFIX + "NoopISM"
    accepts_all: ClassVar[bool] = True

    def verify(self, metadata: bytes, message: MessageLike) -> bool:
        """Accept the message unconditionally."""
        return self.accepts_all


@dataclass
class MessageIdMultisigIsm:
    """An ISM requiring a threshold of validator signatures over a message id checkpoint."""

    id: bytes = _ZERO_ADDRESS
    owner: str = ""
    validators: list[str] = field(default_factory=list)
    threshold: int = 0

    module_type: ClassVar[ModuleType] = ModuleType.MESSAGE_ID_MULTISIG
    type_url: ClassVar[str] = TYPE_URL_PREFIX + "MessageIdMultisigISM"

    def verify(self, metadata: bytes, message: MessageLike) -> bool:
        """Check the signatures in ``metadata``; raise ValueError if it is malformed."""
        parsed = MessageIdMultisigMetadata.from_bytes(metadata)
        return verify_multisig(
            self.validators, self.threshold, parsed.signatures, parsed.digest(message)
        )

    def validate(self) -> None:
        """Raise ValueError unless the configuration is valid."""
        validate_new_multisig(self)


@dataclass
class MerkleRootMultisigIsm:
    """An ISM requiring a threshold of validator signatures over a merkle root checkpoint."""

    id: bytes = _ZERO_ADDRESS
    owner: str = ""
    validators: list[str] = field(default_factory=list)
    threshold: int = 0

    module_type: ClassVar[ModuleType] = ModuleType.MERKLE_ROOT_MULTISIG
    type_url: ClassVar[str] = TYPE_URL_PREFIX + "MerkleRootMultisigISM"

    def verify(self, metadata: bytes, message: MessageLike) -> bool:
        """Check the signatures in ``metadata``; raise ValueError if it is malformed."""
        parsed = MerkleRootMultisigMetadata.from_bytes(metadata)
        if parsed.message_index > parsed.signed_index:
            raise ValueError("invalid signed index")
        return verify_multisig(
            self.validators, self.threshold, parsed.signatures, parsed.digest(message)
        )

    def validate(self) -> None:
        """Raise ValueError unless the configuration is valid."""
        validate_new_multisig(self)


@dataclass
class RoutingIsm:
    """An ISM that delegates verification to another ISM chosen by origin domain."""

    id: bytes = _ZERO_ADDRESS
    owner: str = ""
    routes: list[Route] = field(default_factory=list)

    module_type: ClassVar[ModuleType] = ModuleType.ROUTING
    type_url: ClassVar[str] = TYPE_URL_PREFIX + "RoutingISM"

    def verify(self, metadata: bytes, message: MessageLike) -> bool:
        """Always raises: routing is done by the handler, not the ISM itself."""
        kind = self.type_url.rsplit(".", 1)[-1]
        raise ERR_UNEXPECTED_ERROR.wrap(f"Verify should not be called on {kind}")

    def get_ism(self, domain_id: int) -> bytes | None:
        """Return the ISM id routed for ``domain_id``, or None if there is none."""
        return next((route.ism for route in self.routes if route.domain == domain_id), None)

    def remove_domain(self, domain_id: int) -> bool:
        """Remove the route for ``domain_id``; return whether one was removed."""
        for position, route in enumerate(self.routes):
            if route.domain == domain_id:
                del self.routes[position]
                return True
        return False

    def set_domain(self, route: Route) -> None:
        """Add ``route`` unless its domain already has one; an existing route is kept."""
        if any(existing.domain == route.domain for existing in self.routes):
            return
        self.routes.append(route)