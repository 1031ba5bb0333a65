from dataclasses import dataclass

import pytest

from hyperism.errors import ERR_INVALID_ISM_TYPE, ERR_NO_ROUTE_FOUND, WrappedError
from hyperism.ethsig import encode_eth_hex, keccak256, private_key_to_address, sign
from hyperism.isms import MerkleRootMultisigIsm, MessageIdMultisigIsm, NoopIsm, RoutingIsm
from hyperism.keeper import Keeper, RoutingIsmHandler
from hyperism.multisig import MessageIdMultisigMetadata
from hyperism.types import GenesisState, ModuleType, Route, StorageLocationEntry, format_address

MOCK_TYPE = 200


class FakeRouter:
    def __init__(self):
        self.modules = {}
        self.sequence = 0

    def register_module(self, module_type, handler):
        if int(module_type) in self.modules:
            raise ValueError("module already registered")
        self.modules[int(module_type)] = handler

    def next_sequence(self, module_type):
        seq = self.sequence
        self.sequence += 1
        return (
            b"router_ism".ljust(20, b"\0")
            + int(module_type).to_bytes(4, "big")
            + seq.to_bytes(8, "big")
        )

    def handler_for(self, ism_id):
        return self.modules[int.from_bytes(ism_id[20:24], "big")]


class FakeCore:
    def __init__(self):
        self.router = FakeRouter()

    def ism_router(self):
        return self.router

    def local_domain(self, mailbox_id):
        return 1

    def mailbox_id_exists(self, mailbox_id):
        return True

    def ism_exists(self, ism_id):
        return self.router.handler_for(ism_id).exists(ism_id)

    def verify(self, ism_id, metadata, message):
        return self.router.handler_for(ism_id).verify(ism_id, metadata, message)


class MockIsm:
    def __init__(self, router):
        self.router = router
        self.calls = 0
        self.ids = set()
        router.register_module(MOCK_TYPE, self)

    def register_ism(self):
        ism_id = self.router.next_sequence(MOCK_TYPE)
        self.ids.add(ism_id)
        return ism_id

    def verify(self, ism_id, metadata, message):
        self.calls += 1
        return True

    def exists(self, ism_id):
        return ism_id in self.ids


@dataclass
class Message:
    origin: int = 0

    def id(self):
        return keccak256(self.origin.to_bytes(4, "big"))


@pytest.fixture
def setup():
    keeper = Keeper()
    core = FakeCore()
    keeper.set_core_keeper(core)
    return keeper, core


def create_routing(keeper, core, routes=()):
    ism_id = core.router.next_sequence(ModuleType.ROUTING)
    keeper.set_ism(RoutingIsm(id=ism_id, owner="creator", routes=list(routes)))
    return ism_id


def test_verify_non_existing_ism():
    keeper = Keeper()
    with pytest.raises(LookupError) as info:
        keeper.verify(bytes(32), b"", Message())
    assert str(info.value) == "collections: not found: key '0' of type <nil>"


def test_set_core_keeper_registers_handlers(setup):
    keeper, core = setup
    modules = core.router.modules
    assert modules[ModuleType.UNUSED] is keeper
    assert modules[ModuleType.MERKLE_ROOT_MULTISIG] is keeper
    assert modules[ModuleType.MESSAGE_ID_MULTISIG] is keeper
    assert isinstance(modules[ModuleType.ROUTING], RoutingIsmHandler)
    assert modules[ModuleType.ROUTING].keeper is keeper


def test_set_core_keeper_twice_fails(setup):
    keeper, _ = setup
    with pytest.raises(RuntimeError, match="core keeper already set"):
        keeper.set_core_keeper(FakeCore())


def test_routing_verify_valid(setup):
    keeper, core = setup
    mock = MockIsm(core.router)
    mock_id = mock.register_ism()
    routing = create_routing(keeper, core, [Route(1, mock_id)])
    assert core.verify(routing, b"", Message(origin=1)) is True
    assert mock.calls == 1


def test_routing_verify_nested(setup):
    keeper, core = setup
    mock = MockIsm(core.router)
    mock_id = mock.register_ism()
    routing_b = create_routing(keeper, core, [Route(1, mock_id)])
    routing_a = create_routing(keeper, core, [Route(1, routing_b)])
    assert core.verify(routing_a, b"", Message(origin=1)) is True
    assert mock.calls == 1


def test_routing_verify_multiple_routes(setup):
    keeper, core = setup
    mock = MockIsm(core.router)
    first = mock.register_ism()
    second = mock.register_ism()
    routing = create_routing(keeper, core, [Route(1, first), Route(2, second)])
    assert core.verify(routing, b"", Message(origin=1)) is True
    assert mock.calls == 1


def test_routing_verify_non_existing_ism(setup):
    keeper, core = setup
    routing = bytearray(create_routing(keeper, core))
    routing[31] = 10
    with pytest.raises(LookupError) as info:
        core.verify(bytes(routing), b"", Message(origin=1))
    assert str(info.value) == "collections: not found: key '10' of type <nil>"


def test_routing_verify_non_enrolled_domain(setup):
    keeper, core = setup
    routing = create_routing(keeper, core)
    with pytest.raises(WrappedError) as info:
        core.verify(routing, b"", Message(origin=1))
    assert str(info.value) == "no route found for domain 1: no route found"
    assert info.value.kind is ERR_NO_ROUTE_FOUND


def test_routing_verify_self_reference_overflows(setup):
    keeper, core = setup
    routing = core.router.next_sequence(ModuleType.ROUTING)
    keeper.set_ism(RoutingIsm(id=routing, owner="creator", routes=[Route(1, routing)]))
    with pytest.raises(RecursionError):
        core.verify(routing, b"", Message(origin=1))


def test_routing_verify_with_1000_routes(setup):
    keeper, core = setup
    mock = MockIsm(core.router)
    routes = [Route(domain, mock.register_ism()) for domain in range(1, 1001)]
    routing = create_routing(keeper, core, routes)
    assert core.verify(routing, b"", Message(origin=1000)) is True
    assert mock.calls == 1


def test_routing_handler_rejects_non_routing_ism(setup):
    keeper, core = setup
    noop_id = core.router.next_sequence(ModuleType.UNUSED)
    keeper.set_ism(NoopIsm(id=noop_id, owner="creator"))
    with pytest.raises(WrappedError) as info:
        RoutingIsmHandler(keeper).verify(noop_id, b"", Message(origin=1))
    assert info.value.kind is ERR_INVALID_ISM_TYPE
    assert str(info.value) == f"ISM {format_address(noop_id)} is not a routing ISM: invalid ism type"


def test_routing_handler_exists(setup):
    keeper, core = setup
    routing = create_routing(keeper, core)
    handler = RoutingIsmHandler(keeper)
    assert handler.exists(routing) is True
    assert handler.exists(core.router.next_sequence(ModuleType.ROUTING)) is False


def test_keeper_verifies_noop_ism(setup):
    keeper, core = setup
    noop_id = core.router.next_sequence(ModuleType.UNUSED)
    keeper.set_ism(NoopIsm(id=noop_id))
    assert core.verify(noop_id, b"", Message()) is True


def test_keeper_verifies_message_id_multisig(setup):
    keeper, core = setup
    signer_scalar = (7).to_bytes(32, "big")
    address = encode_eth_hex(private_key_to_address(signer_scalar))
    ism_id = core.router.next_sequence(ModuleType.MESSAGE_ID_MULTISIG)
    keeper.set_ism(MessageIdMultisigIsm(id=ism_id, validators=[address], threshold=1))

    message = Message(origin=5)
    metadata = MessageIdMultisigMetadata()
    metadata.signatures = [sign(metadata.digest(message), signer_scalar)]
    assert keeper.verify(ism_id, metadata.to_bytes(), message) is True

    with pytest.raises(ValueError, match="expected at least 68 bytes"):
        keeper.verify(ism_id, b"", message)


def test_get_ism_returns_copy(setup):
    keeper, core = setup
    routing = create_routing(keeper, core)
    fetched = keeper.get_ism(routing)
    fetched.owner = "changed"
    fetched.routes.append(Route(1, routing))
    stored = keeper.get_ism(routing)
    assert stored.owner == "creator"
    assert stored.routes == []


def test_exists(setup):
    keeper, core = setup
    noop_id = core.router.next_sequence(ModuleType.UNUSED)
    assert keeper.exists(noop_id) is False
    keeper.set_ism(NoopIsm(id=noop_id))
    assert keeper.exists(noop_id) is True


def test_storage_locations_ordered_and_isolated():
    keeper = Keeper()
    mailbox = bytes(31) + b"\x01"
    validator = "0x" + "ab" * 20
    other = "0x" + "cd" * 20
    assert keeper.add_storage_location(mailbox, validator, "aws://key.pub") == 0
    assert keeper.add_storage_location(mailbox, validator, "aws://key2.pub") == 1
    keeper.add_storage_location(mailbox, other, "s3://other")

    mailbox_hex = format_address(mailbox)
    assert keeper.announced_storage_locations(mailbox_hex, validator) == [
        "aws://key.pub",
        "aws://key2.pub",
    ]
    assert keeper.latest_announced_storage_location(mailbox_hex, validator) == "aws://key2.pub"
    assert keeper.announced_storage_locations(mailbox_hex, other) == ["s3://other"]
    assert keeper.announced_storage_locations(mailbox_hex, "") == []


def test_latest_storage_location_missing():
    keeper = Keeper()
    with pytest.raises(LookupError):
        keeper.latest_announced_storage_location(bytes(32), "0x" + "ab" * 20)


def test_ism_query(setup):
    keeper, core = setup
    routing = create_routing(keeper, core)
    type_url, found = keeper.ism(format_address(routing))
    assert type_url == "/hyperlane.core.interchain_security.v1.RoutingISM"
    assert found.owner == "creator"
    assert found.id == routing


def test_ism_query_errors(setup):
    keeper, _ = setup
    with pytest.raises(ValueError, match="invalid hex address nothex"):
        keeper.ism("nothex")
    missing = format_address(bytes(32))
    with pytest.raises(LookupError) as info:
        keeper.ism(missing)
    assert str(info.value) == f"ism {missing} not found"


def test_isms_query_lists_all_in_order(setup):
    keeper, core = setup
    noop_id = core.router.next_sequence(ModuleType.UNUSED)
    merkle_id = core.router.next_sequence(ModuleType.MERKLE_ROOT_MULTISIG)
    keeper.set_ism(MerkleRootMultisigIsm(id=merkle_id, threshold=1))
    keeper.set_ism(NoopIsm(id=noop_id))
    listed = keeper.isms()
    assert [url for url, _ in listed] == [
        "/hyperlane.core.interchain_security.v1.NoopISM",
        "/hyperlane.core.interchain_security.v1.MerkleRootMultisigISM",
    ]
    assert [ism.id for _, ism in listed] == [noop_id, merkle_id]


def test_genesis_round_trip(setup):
    keeper, core = setup
    mock = MockIsm(core.router)
    routing = create_routing(keeper, core, [Route(3, mock.register_ism())])
    keeper.set_ism(NoopIsm(id=core.router.next_sequence(ModuleType.UNUSED), owner="creator"))
    keeper.add_storage_location(bytes(31) + b"\x02", "0x" + "ab" * 20, "aws://key.pub")

    exported = keeper.export_genesis()
    assert exported.validator_storage_locations == [
        StorageLocationEntry(2, "0x" + "ab" * 20, 0, "aws://key.pub")
    ]

    fresh = Keeper()
    fresh.init_genesis(exported)
    assert fresh.export_genesis() == exported
    assert fresh.get_ism(routing).routes == keeper.get_ism(routing).routes


def test_genesis_unsupported_type():
    keeper = Keeper()
    state = GenesisState(isms=[("/unknown.Type", NoopIsm())])
    with pytest.raises(ValueError, match="unsupported type /unknown.Type"):
        keeper.init_genesis(state)
    assert keeper.isms() == []


def test_genesis_none_is_noop():
    keeper = Keeper()
    keeper.init_genesis(None)
    assert keeper.export_genesis() == GenesisState()