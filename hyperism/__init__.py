"""Interchain security modules: multisig verification, routing ISMs, a keeper, a message server and a command line."""

__version__ = "0.1.0"

__all__ = ["__version__"]