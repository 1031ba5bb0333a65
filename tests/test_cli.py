import io
import json
import sys

import pytest

from hyperism.cli import RENOUNCE_PROMPT, build_parser, main
from hyperism.types import TYPE_URL_PREFIX, format_address

SENDER = "cosmos1examplesender"
ISM_A = "0x" + "00" * 31 + "01"
ISM_B = "0x" + "00" * 31 + "02"


def run(capsys, argv):
    code = main(argv)
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def test_create_noop(capsys):
    code, out, _ = run(capsys, ["create-noop", "--from", SENDER])
    assert code == 0
    message = json.loads(out)
    assert message == {"@type": TYPE_URL_PREFIX + "MsgCreateNoopIsm", "creator": SENDER}


@pytest.mark.parametrize(
    "command,name",
    [
        ("create-message-id-multisig", "MsgCreateMessageIdMultisigIsm"),
        ("create-merkle-root-multisig", "MsgCreateMerkleRootMultisigIsm"),
    ],
)
def test_create_multisig(capsys, command, name):
    validators = [
        "0xa05b6a0aa112b61a7aa16c19cac27d970692995e",
        "0xb05b6a0aa112b61a7aa16c19cac27d970692995e",
    ]
    code, out, _ = run(capsys, [command, ",".join(validators), "2", "--from", SENDER])
    assert code == 0
    message = json.loads(out)
    assert message["@type"] == TYPE_URL_PREFIX + name
    assert message["validators"] == validators
    assert message["threshold"] == 2
    assert message["creator"] == SENDER


@pytest.mark.parametrize("threshold", ["-1", "abc", "1.5", "4294967296", ""])
def test_invalid_threshold(capsys, threshold):
    code, out, err = run(
        capsys, ["create-message-id-multisig", "0xab", threshold, "--from", SENDER]
    )
    assert code == 1
    assert out == ""
    assert "strconv.ParseUint" in err


def test_create_routing_with_routes(capsys):
    routes = json.dumps([{"domain": 1337, "ism": ISM_A}, {"domain": 1338, "ism": ISM_B}])
    code, out, _ = run(capsys, ["create-routing", "--routes", routes, "--from", SENDER])
    assert code == 0
    message = json.loads(out)
    assert message["routes"] == [
        {"ism": ISM_A, "domain": 1337},
        {"ism": ISM_B, "domain": 1338},
    ]


def test_create_routing_defaults_to_no_routes(capsys):
    code, out, _ = run(capsys, ["create-routing", "--from", SENDER])
    assert code == 0
    assert json.loads(out)["routes"] == []


@pytest.mark.parametrize("routes", ["not json", "{}", '[{"domain": "x"}]', '[{"ism": "0x12"}]'])
def test_create_routing_invalid_routes(capsys, routes):
    code, _, err = run(capsys, ["create-routing", "--routes", routes, "--from", SENDER])
    assert code == 1
    assert "failed to parse routes JSON" in err


def test_announce(capsys):
    mailbox = "0xd7194459d45619d04a5a0f9e78dc9594a0f37fd6da8382fe12ddda6f2f46d647"
    validator = "0x0b1caf89d1edb9ee161093b1ec94ca75611db492"
    code, out, _ = run(
        capsys,
        ["announce", validator, "aws://key.pub", "0xabcd", mailbox, "--from", SENDER],
    )
    assert code == 0
    message = json.loads(out)
    assert message["validator"] == validator
    assert message["storage_location"] == "aws://key.pub"
    assert message["signature"] == "0xabcd"
    assert message["mailbox_id"] == mailbox
    assert message["creator"] == SENDER


def test_announce_invalid_mailbox(capsys):
    code, out, _ = run(
        capsys, ["announce", "0x00", "aws://key.pub", "0xab", "0x1234", "--from", SENDER]
    )
    assert code == 1
    assert out == ""


def test_set_routing_ism_domain(capsys):
    code, out, _ = run(
        capsys, ["set-routing-ism-domain", ISM_A, "1337", ISM_B, "--from", SENDER]
    )
    assert code == 0
    message = json.loads(out)
    assert message["ism_id"] == ISM_A
    assert message["route"] == {"ism": ISM_B, "domain": 1337}
    assert message["owner"] == SENDER


def test_remove_routing_ism_domain(capsys):
    code, out, _ = run(capsys, ["remove-routing-ism-domain", ISM_A, "1337", "--from", SENDER])
    assert code == 0
    message = json.loads(out)
    assert message["@type"] == TYPE_URL_PREFIX + "MsgRemoveRoutingIsmDomain"
    assert message["domain"] == 1337
    assert message["ism_id"] == ISM_A


def test_update_owner_new_owner(capsys):
    code, out, _ = run(
        capsys,
        ["update-routing-ism-owner", ISM_A, "--new-owner", "cosmos1newowner", "--from", SENDER],
    )
    assert code == 0
    message = json.loads(out)
    assert message["new_owner"] == "cosmos1newowner"
    assert message["renounce_ownership"] is False


def test_update_owner_renounce_with_yes_skips_prompt(capsys):
    code, out, _ = run(
        capsys,
        ["update-routing-ism-owner", ISM_A, "--renounce-ownership", "--yes", "--from", SENDER],
    )
    assert code == 0
    assert RENOUNCE_PROMPT not in out
    assert json.loads(out)["renounce_ownership"] is True


def test_update_owner_renounce_confirmed(capsys, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("YES\n"))
    code, out, _ = run(
        capsys, ["update-routing-ism-owner", ISM_A, "--renounce-ownership", "--from", SENDER]
    )
    assert code == 0
    prompt, _, body = out.partition(RENOUNCE_PROMPT)
    assert prompt == ""
    message = json.loads(body)
    assert message["renounce_ownership"] is True
    assert message["new_owner"] == ""


def test_update_owner_renounce_declined(capsys, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("no\n"))
    code, _, err = run(
        capsys, ["update-routing-ism-owner", ISM_A, "--renounce-ownership", "--from", SENDER]
    )
    assert code == 1
    assert "canceled transaction" in err


def test_missing_sender_is_rejected():
    with pytest.raises(SystemExit) as excinfo:
        main(["create-noop"])
    assert excinfo.value.code == 2


def test_parser_address_round_trip():
    args = build_parser().parse_args(["remove-routing-ism-domain", ISM_B, "7", "--from", SENDER])
    message = args.handler(args)
    assert message["ism_id"] == format_address(bytes.fromhex(ISM_B[2:]))