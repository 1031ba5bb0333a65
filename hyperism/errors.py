"""Registered error kinds of the interchain security module."""

from __future__ import annotations

CODESPACE = "ism"

_registry: dict[tuple[str, int], RegisteredError] = {}


class RegisteredError(Exception):
    """An error kind identified by its codespace and code.

    Each (codespace, code) pair may be registered only once.
    """

    def __init__(self, codespace: str, code: int, description: str) -> None:
        key = (codespace, code)
        existing = _registry.get(key)
        if existing is not None:
            raise ValueError(
                f"error with code {code} is already registered: {existing.description!r}"
            )
        super().__init__(description)
        self.codespace = codespace
        self.code = code
        self.description = description
        _registry[key] = self

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return f"RegisteredError({self.codespace!r}, {self.code}, {self.description!r})"

    def wrap(self, message: str) -> WrappedError:
        """Return an exception of this kind carrying an extra message."""
        return WrappedError(self, message)


class WrappedError(Exception):
    """An error of a registered kind with a context message."""

    def __init__(self, kind: RegisteredError, message: str) -> None:
        super().__init__(f"{message}: {kind.description}")
        self.kind = kind
        self.message = message

    @property
    def code(self) -> int:
        return self.kind.code

    @property
    def codespace(self) -> str:
        return self.kind.codespace


ERR_UNEXPECTED_ERROR = RegisteredError(CODESPACE, 1, "unexpected error")
ERR_INVALID_MULTISIG_CONFIGURATION = RegisteredError(CODESPACE, 2, "invalid multisig configuration")
ERR_INVALID_ANNOUNCE = RegisteredError(CODESPACE, 3, "invalid announce")
ERR_MAILBOX_DOES_NOT_EXIST = RegisteredError(CODESPACE, 4, "mailbox does not exist")
ERR_INVALID_SIGNATURE = RegisteredError(CODESPACE, 5, "invalid signature")
ERR_INVALID_ISM_TYPE = RegisteredError(CODESPACE, 6, "invalid ism type")
ERR_UNKNOWN_ISM_ID = RegisteredError(CODESPACE, 7, "unknown ism id")
ERR_NO_ROUTE_FOUND = RegisteredError(CODESPACE, 8, "no route found")
ERR_UNAUTHORIZED = RegisteredError(CODESPACE, 9, "unauthorized")
ERR_INVALID_OWNER = RegisteredError(CODESPACE, 10, "invalid owner")
ERR_DUPLICATED_DOMAINS = RegisteredError(CODESPACE, 11, "route for domain already exists")