"""Ethereum-style hashing, hex encoding and secp256k1 signatures."""

from __future__ import annotations

import hashlib
import hmac
import re

from Crypto.Hash import keccak

# secp256k1 domain parameters
_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)

_HEX_BODY = re.compile(r"[0-9a-fA-F]*")

_Point = "tuple[int, int] | None"


def keccak256(data: bytes) -> bytes:
    """Return the Keccak-256 hash of ``data``."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def eth_signing_hash(digest: bytes) -> bytes:
    """Return the hash of ``digest`` under the Ethereum signed-message prefix."""
    prefix = f"\x19Ethereum Signed Message:\n{len(digest)}".encode()
    return keccak256(prefix + bytes(digest))


def encode_eth_hex(data: bytes) -> str:
    """Encode bytes as lower-case hex with a ``0x`` prefix."""
    return "0x" + bytes(data).hex()


def decode_eth_hex(text: str) -> bytes:
    """Decode a ``0x``-prefixed hex string; raise ValueError if malformed."""
    if not text.startswith("0x"):
        raise ValueError(f"invalid hex string {text!r}: missing 0x prefix")
    body = text[2:]
    if len(body) % 2:
        raise ValueError(f"invalid hex string {text!r}: odd length")
    if not _HEX_BODY.fullmatch(body):
        raise ValueError(f"invalid hex string {text!r}: invalid byte")
    return bytes.fromhex(body)


def _add(a, b):
    if a is None:
        return b
    if b is None:
        return a
    (x1, y1), (x2, y2) = a, b
    if x1 == x2:
        if (y1 + y2) % _P == 0:
            return None
        slope = 3 * x1 * x1 * pow(2 * y1, -1, _P) % _P
    else:
        slope = (y2 - y1) * pow(x2 - x1, -1, _P) % _P
    x3 = (slope * slope - x1 - x2) % _P
    return x3, (slope * (x1 - x3) - y1) % _P


def _mul(scalar: int, point):
    result = None
    addend = point
    while scalar:
        if scalar & 1:
            result = _add(result, addend)
        addend = _add(addend, addend)
        scalar >>= 1
    return result


def _secret_scalar(private_key: bytes | int) -> int:
    if isinstance(private_key, int):
        scalar = private_key
    else:
        raw = bytes(private_key)
        if len(raw) != 32:
            raise ValueError("invalid private key: must be 32 bytes")
        scalar = int.from_bytes(raw, "big")
    if not 0 < scalar < _N:
        raise ValueError("invalid private key: out of range")
    return scalar


def _point_to_address(point) -> bytes:
    x, y = point
    return keccak256(x.to_bytes(32, "big") + y.to_bytes(32, "big"))[12:]


def private_key_to_address(private_key: bytes | int) -> bytes:
    """Return the 20-byte Ethereum address of a secp256k1 private key."""
    return _point_to_address(_mul(_secret_scalar(private_key), _G))


def _check_digest(digest: bytes) -> bytes:
    digest = bytes(digest)
    if len(digest) != 32:
        raise ValueError(f"hash is required to be exactly 32 bytes ({len(digest)})")
    return digest


def _nonces(secret: int, digest: bytes):
    x = secret.to_bytes(32, "big")
    h1 = (int.from_bytes(digest, "big") % _N).to_bytes(32, "big")
    v = b"\x01" * 32
    k = b"\x00" * 32
    k = hmac.new(k, v + b"\x00" + x + h1, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    k = hmac.new(k, v + b"\x01" + x + h1, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    while True:
        v = hmac.new(k, v, hashlib.sha256).digest()
        candidate = int.from_bytes(v, "big")
        if 0 < candidate < _N:
            yield candidate
        k = hmac.new(k, v + b"\x00", hashlib.sha256).digest()
        v = hmac.new(k, v, hashlib.sha256).digest()


def sign(digest: bytes, private_key: bytes | int) -> bytes:
    """Sign a 32-byte digest deterministically.

    Returns 65 bytes ``r || s || v`` with a low ``s`` and ``v`` in {27, 28}.
    """
    digest = _check_digest(digest)
    secret = _secret_scalar(private_key)
    e = int.from_bytes(digest, "big")
    for nonce in _nonces(secret, digest):
        rx, ry = _mul(nonce, _G)
        r = rx % _N
        if r == 0 or rx >= _N:
            continue
        s = pow(nonce, -1, _N) * (e + r * secret) % _N
        if s == 0:
            continue
        recovery_id = ry & 1
        if s > _N // 2:
            s = _N - s
            recovery_id ^= 1
        return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([27 + recovery_id])
    raise AssertionError("unreachable")


def recover_address(digest: bytes, signature: bytes) -> bytes:
    """Recover the 20-byte signer address from a 65-byte signature.

    The recovery byte must be 27 or 28; any failure raises ValueError.
    """
    digest = _check_digest(digest)
    signature = bytes(signature)
    if len(signature) != 65:
        raise ValueError("invalid signature length")
    v = signature[64]
    if v not in (27, 28):
        raise ValueError("invalid signature recovery id")
    recovery_id = v - 27
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    if not 0 < r < _N:
        raise ValueError("invalid signature: r is out of range")
    if not 0 < s < _N:
        raise ValueError("invalid signature: s is out of range")
    alpha = (pow(r, 3, _P) + 7) % _P
    y = pow(alpha, (_P + 1) // 4, _P)
    if y * y % _P != alpha:
        raise ValueError("invalid signature: r is not a curve point")
    if y & 1 != recovery_id:
        y = _P - y
    e = int.from_bytes(digest, "big")
    r_inv = pow(r, -1, _N)
    public = _add(_mul(s * r_inv % _N, (r, y)), _mul(-e * r_inv % _N, _G))
    if public is None:
        raise ValueError("invalid signature: recovered point at infinity")
    return _point_to_address(public)