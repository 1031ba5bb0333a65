"""Multisig verification and the metadata formats of the multisig ISMs."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from .ethsig import decode_eth_hex, encode_eth_hex, eth_signing_hash, keccak256, recover_address
from .types import MessageLike

SIGNATURE_LENGTH = 65
HASH_LENGTH = 32
TREE_DEPTH = 32
ETH_ADDRESS_LENGTH = 20


class MultisigConfig(Protocol):
    """A multisig configuration: its validators and signature threshold."""

    validators: Sequence[str]
    threshold: int


def verify_multisig(
    validators: Sequence[str],
    threshold: int,
    signatures: Sequence[bytes],
    digest: bytes,
) -> bool:
    """Check that ``digest`` is signed by at least ``threshold`` validators.

    Signatures must appear in the same order as their validators. Raises
    ValueError when too few signatures are given or one cannot be recovered.
    """
    if len(signatures) < threshold:
        raise ValueError("threshold can not be reached")

    remaining = (validator.lower() for validator in validators)
    for signature in signatures[:threshold]:
        try:
            signer_address = recover_address(digest, signature)
        except ValueError as exc:
            raise ValueError(f"failed to recover validator signature: {exc}") from exc
        signer = encode_eth_hex(signer_address)
        # Consumes validators up to and including the match, so each
        # validator can vouch for at most one signature.
        if not any(candidate == signer for candidate in remaining):
            return False
    return True


def validate_new_multisig(ism: MultisigConfig) -> None:
    """Raise ValueError unless the multisig configuration is valid."""
    threshold = ism.threshold
    validators = list(ism.validators)

    if threshold <= 0:
        raise ValueError("threshold must be greater than zero")
    if len(validators) < threshold:
        raise ValueError("validator addresses less than threshold")
    if validators != sorted(validators):
        raise ValueError("validator addresses are not sorted correctly in ascending order")

    seen: set[str] = set()
    for address in validators:
        try:
            raw = decode_eth_hex(address)
        except ValueError:
            raise ValueError(f"invalid validator address: {address}") from None
        if len(raw) != ETH_ADDRESS_LENGTH:
            raise ValueError("invalid validator address: must be 20 bytes")
        if address in seen:
            raise ValueError(f"duplicate validator address: {address}")
        seen.add(address)


def domain_hash(origin: int, merkle_tree_hook: bytes) -> bytes:
    """Return the hash binding a checkpoint to its origin domain and merkle tree hook."""
    return keccak256(struct.pack(">I", origin) + bytes(merkle_tree_hook) + b"HYPERLANE")


def checkpoint_digest(
    origin: int,
    merkle_tree_hook: bytes,
    checkpoint_root: bytes,
    checkpoint_index: int,
    message_id: bytes,
) -> bytes:
    """Return the Ethereum signing hash validators sign for a checkpoint."""
    payload = (
        domain_hash(origin, merkle_tree_hook)
        + bytes(checkpoint_root)
        + struct.pack(">I", checkpoint_index)
        + bytes(message_id)
    )
    return eth_signing_hash(keccak256(payload))


def _branch_root(leaf: bytes, proof: Sequence[bytes], index: int) -> bytes:
    current = bytes(leaf)
    for depth, sibling in enumerate(proof):
        if (index >> depth) & 1:
            current = keccak256(sibling + current)
        else:
            current = keccak256(current + sibling)
    return current


def _split_signatures(raw: bytes) -> list[bytes]:
    if len(raw) % SIGNATURE_LENGTH:
        raise ValueError("invalid signatures length in metadata")
    return [raw[start:start + SIGNATURE_LENGTH] for start in range(0, len(raw), SIGNATURE_LENGTH)]


def _hash_field(value: bytes, name: str) -> bytes:
    value = bytes(value)
    if len(value) != HASH_LENGTH:
        raise ValueError(f"{name} must be {HASH_LENGTH} bytes, got {len(value)}")
    return value


def _uint32(value: int, name: str) -> int:
    if not 0 <= value < 1 << 32:
        raise ValueError(f"{name} must fit in 32 bits")
    return value


def _zero_proof() -> tuple[bytes, ...]:
    return tuple(bytes(HASH_LENGTH) for _ in range(TREE_DEPTH))


@dataclass
class MessageIdMultisigMetadata:
    """Metadata of the message-id multisig ISM.

    Layout: merkle tree hook (32), checkpoint root (32), checkpoint index (4),
    then 65-byte validator signatures.
    """

    merkle_tree_hook: bytes = bytes(HASH_LENGTH)
    merkle_root: bytes = bytes(HASH_LENGTH)
    merkle_index: int = 0
    signatures: list[bytes] = field(default_factory=list)

    HEADER_LENGTH = 68

    def __post_init__(self) -> None:
        self.merkle_tree_hook = _hash_field(self.merkle_tree_hook, "merkle tree hook")
        self.merkle_root = _hash_field(self.merkle_root, "merkle root")
        self.merkle_index = _uint32(self.merkle_index, "merkle index")
        self.signatures = [bytes(signature) for signature in self.signatures]

    @property
    def signature_count(self) -> int:
        return len(self.signatures)

    @classmethod
    def from_bytes(cls, data: bytes) -> MessageIdMultisigMetadata:
        """Parse raw metadata; raise ValueError if it is malformed."""
        data = bytes(data)
        if len(data) < cls.HEADER_LENGTH:
            raise ValueError(
                f"invalid metadata length: got {len(data)}, "
                f"expected at least {cls.HEADER_LENGTH} bytes"
            )
        signatures = _split_signatures(data[cls.HEADER_LENGTH:])
        (merkle_index,) = struct.unpack_from(">I", data, 64)
        return cls(
            merkle_tree_hook=data[:32],
            merkle_root=data[32:64],
            merkle_index=merkle_index,
            signatures=signatures,
        )

    def to_bytes(self) -> bytes:
        """Serialise the metadata in its wire layout."""
        return (
            self.merkle_tree_hook
            + self.merkle_root
            + struct.pack(">I", self.merkle_index)
            + b"".join(self.signatures)
        )

    def digest(self, message: MessageLike) -> bytes:
        """Return the checkpoint digest validators sign for ``message``."""
        return checkpoint_digest(
            message.origin,
            self.merkle_tree_hook,
            self.merkle_root,
            self.merkle_index,
            message.id(),
        )


@dataclass
class MerkleRootMultisigMetadata:
    """Metadata of the merkle-root multisig ISM.

    Layout: merkle tree hook (32), message index (4), signed message id (32),
    merkle proof (32 x 32), signed checkpoint index (4), then 65-byte signatures.
    """

    merkle_tree_hook: bytes = bytes(HASH_LENGTH)
    message_index: int = 0
    merkle_proof: tuple[bytes, ...] = field(default_factory=_zero_proof)
    signed_index: int = 0
    signed_message_id: bytes = bytes(HASH_LENGTH)
    signatures: list[bytes] = field(default_factory=list)

    HEADER_LENGTH = 1096

    def __post_init__(self) -> None:
        self.merkle_tree_hook = _hash_field(self.merkle_tree_hook, "merkle tree hook")
        self.message_index = _uint32(self.message_index, "message index")
        proof = tuple(_hash_field(node, "merkle proof node") for node in self.merkle_proof)
        if len(proof) != TREE_DEPTH:
            raise ValueError(f"merkle proof must hold {TREE_DEPTH} hashes, got {len(proof)}")
        self.merkle_proof = proof
        self.signed_index = _uint32(self.signed_index, "signed index")
        self.signed_message_id = _hash_field(self.signed_message_id, "signed message id")
        self.signatures = [bytes(signature) for signature in self.signatures]

    @property
    def signature_count(self) -> int:
        return len(self.signatures)

    @classmethod
    def from_bytes(cls, data: bytes) -> MerkleRootMultisigMetadata:
        """Parse raw metadata; raise ValueError if it is malformed."""
        data = bytes(data)
        if len(data) < cls.HEADER_LENGTH:
            raise ValueError(
                f"invalid metadata length: got {len(data)}, "
                f"expected at least {cls.HEADER_LENGTH} bytes"
            )
        signatures = _split_signatures(data[cls.HEADER_LENGTH:])
        proof_bytes = data[68:1092]
        proof = tuple(
            proof_bytes[start:start + HASH_LENGTH]
            for start in range(0, len(proof_bytes), HASH_LENGTH)
        )
        (message_index,) = struct.unpack_from(">I", data, 32)
        (signed_index,) = struct.unpack_from(">I", data, 1092)
        return cls(
            merkle_tree_hook=data[:32],
            message_index=message_index,
            merkle_proof=proof,
            signed_index=signed_index,
            signed_message_id=data[36:68],
            signatures=signatures,
        )

    def to_bytes(self) -> bytes:
        """Serialise the metadata in its wire layout."""
        return (
            self.merkle_tree_hook
            + struct.pack(">I", self.message_index)
            + self.signed_message_id
            + b"".join(self.merkle_proof)
            + struct.pack(">I", self.signed_index)
            + b"".join(self.signatures)
        )

    def digest(self, message: MessageLike) -> bytes:
        """Return the checkpoint digest validators sign for ``message``."""
        signed_root = _branch_root(message.id(), self.merkle_proof, self.message_index)
        return checkpoint_digest(
            message.origin,
            self.merkle_tree_hook,
            signed_root,
            self.signed_index,
            self.signed_message_id,
        )