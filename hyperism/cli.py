"""Command line for building the module's transaction messages."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Callable

from .types import ADDRESS_LENGTH, TYPE_URL_PREFIX, format_address, parse_address

RENOUNCE_PROMPT = (
    "Are you sure you want to renounce ownership? This action is irreversible. (yes/no): "
)

_UINT32_LIMIT = 1 << 32


class CliError(Exception):
    """A command failed; the message is shown to the user."""


def _parse_uint32(text: str) -> int:
    if not text or not text.isascii() or not text.isdigit():
        raise CliError(f'strconv.ParseUint: parsing "{text}": invalid syntax')
    value = int(text)
    if value >= _UINT32_LIMIT:
        raise CliError(f'strconv.ParseUint: parsing "{text}": value out of range')
    return value


def _address(text: str) -> str:
    try:
        return format_address(parse_address(text))
    except ValueError as exc:
        raise CliError(str(exc)) from exc


def _parse_routes(text: str) -> list[dict[str, Any]]:
    def fail(reason: str) -> CliError:
        return CliError(f"failed to parse routes JSON: {reason}")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise fail(str(exc)) from exc
    if data is None:
        return []
    if not isinstance(data, list):
        raise fail("routes must be a JSON array")

    routes = []
    for item in data:
        if not isinstance(item, dict):
            raise fail("every route must be a JSON object")
        domain = item.get("domain", 0)
        if isinstance(domain, bool) or not isinstance(domain, int):
            raise fail("domain must be an integer")
        if not 0 <= domain < _UINT32_LIMIT:
            raise fail(f"domain {domain} out of range")
        ism_text = item.get("ism")
        if ism_text is None:
            ism = format_address(bytes(ADDRESS_LENGTH))
        elif isinstance(ism_text, str):
            try:
                ism = format_address(parse_address(ism_text))
            except ValueError as exc:
                raise fail(str(exc)) from exc
        else:
            raise fail("ism must be a hex string")
        routes.append({"ism": ism, "domain": domain})
    return routes


def _message(name: str, **fields: Any) -> dict[str, Any]:
    return {"@type": TYPE_URL_PREFIX + name, **fields}


def _announce(args: argparse.Namespace) -> dict[str, Any]:
    mailbox_id = _address(args.mailbox_id)
    return _message(
        "MsgAnnounceValidator",
        validator=args.address,
        storage_location=args.storage_location,
        signature=args.signature,
        mailbox_id=mailbox_id,
        creator=args.sender,
    )


def _multisig(name: str) -> Callable[[argparse.Namespace], dict[str, Any]]:
    def handler(args: argparse.Namespace) -> dict[str, Any]:
        validators = args.validators.split(",")
        threshold = _parse_uint32(args.threshold)
        return _message(name, creator=args.sender, validators=validators, threshold=threshold)

    return handler


def _create_noop(args: argparse.Namespace) -> dict[str, Any]:
    return _message("MsgCreateNoopIsm", creator=args.sender)


def _create_routing(args: argparse.Namespace) -> dict[str, Any]:
    routes = _parse_routes(args.routes)
    return _message("MsgCreateRoutingIsm", creator=args.sender, routes=routes)


def _set_routing_domain(args: argparse.Namespace) -> dict[str, Any]:
    routing_ism_id = _address(args.routing_ism_id)
    domain = _parse_uint32(args.domain)
    ism_id = _address(args.ism_id)
    return _message(
        "MsgSetRoutingIsmDomain",
        ism_id=routing_ism_id,
        route={"ism": ism_id, "domain": domain},
        owner=args.sender,
    )


def _remove_routing_domain(args: argparse.Namespace) -> dict[str, Any]:
    routing_ism_id = _address(args.routing_ism_id)
    domain = _parse_uint32(args.domain)
    return _message(
        "MsgRemoveRoutingIsmDomain", ism_id=routing_ism_id, domain=domain, owner=args.sender
    )


def _confirm_renounce() -> None:
    sys.stdout.write(RENOUNCE_PROMPT)
    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line:
        raise CliError("EOF")
    response = line.strip()
    if not response:
        raise CliError("unexpected newline")
    if response.split()[0].lower() != "yes":
        raise CliError("canceled transaction")


def _update_owner(args: argparse.Namespace) -> dict[str, Any]:
    if args.renounce_ownership and not args.yes:
        _confirm_renounce()
    routing_ism_id = _address(args.routing_ism_id)
    return _message(
        "MsgUpdateRoutingIsmOwner",
        ism_id=routing_ism_id,
        new_owner=args.new_owner,
        owner=args.sender,
        renounce_ownership=args.renounce_ownership,
    )


def build_parser() -> argparse.ArgumentParser:
    """Return the parser for the ``ism`` transaction commands."""
    tx_flags = argparse.ArgumentParser(add_help=False)
    tx_flags.add_argument(
        "--from", dest="sender", required=True, help="address of the transaction sender"
    )
    tx_flags.add_argument("-y", "--yes", action="store_true", help="skip confirmation")

    parser = argparse.ArgumentParser(
        prog="ism", description="Hyperlane Interchain Security Module commands"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    def command(name: str, help_text: str, handler: Callable) -> argparse.ArgumentParser:
        sub = commands.add_parser(name, help=help_text, parents=[tx_flags])
        sub.set_defaults(handler=handler)
        return sub

    announce = command("announce", "Announce a Hyperlane validator", _announce)
    announce.add_argument("address")
    announce.add_argument("storage_location")
    announce.add_argument("signature", help="hex encoded signature")
    announce.add_argument("mailbox_id")

    message_id = command(
        "create-message-id-multisig",
        "Create a Hyperlane MessageId Multisig ISM",
        _multisig("MsgCreateMessageIdMultisigIsm"),
    )
    message_id.add_argument("validators")
    message_id.add_argument("threshold")

    merkle_root = command(
        "create-merkle-root-multisig",
        "Create a Hyperlane MerkleRoot Multisig ISM",
        _multisig("MsgCreateMerkleRootMultisigIsm"),
    )
    merkle_root.add_argument("validators")
    merkle_root.add_argument("threshold")

    command("create-noop", "Create a Hyperlane Noop ISM", _create_noop)

    routing = command("create-routing", "Create a Hyperlane Routing ISM", _create_routing)
    routing.add_argument(
        "--routes",
        default="[]",
        help='JSON array of routes, e.g. \'[{"domain":1,"ism":"0xabc..."}]\'',
    )

    set_domain = command(
        "set-routing-ism-domain",
        "Sets the ISM for a given domain in the routing ISM",
        _set_routing_domain,
    )
    set_domain.add_argument("routing_ism_id")
    set_domain.add_argument("domain")
    set_domain.add_argument("ism_id")

    remove_domain = command(
        "remove-routing-ism-domain",
        "Removes the ISM for a given domain in the routing ISM",
        _remove_routing_domain,
    )
    remove_domain.add_argument("routing_ism_id")
    remove_domain.add_argument("domain")

    update_owner = command(
        "update-routing-ism-owner", "Update the owner of a routing ISM", _update_owner
    )
    update_owner.add_argument("routing_ism_id")
    update_owner.add_argument("--new-owner", default="", help="new owner")
    update_owner.add_argument(
        "--renounce-ownership", action="store_true", help="renounce ownership"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Build the requested message and print it as JSON; return the exit status."""
    args = build_parser().parse_args(argv)
    try:
        message = args.handler(args)
    except CliError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(message, indent=2))
    return 0