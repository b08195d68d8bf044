import json

import pytest

from aa_gas_estimator.exceptions import RpcRequestException, \
    ValidationException, ValidationExceptionCode
from aa_gas_estimator.simulation.entrypoint import EntryPointV6
from aa_gas_estimator.simulation.simulation_client import SimulationClient
from aa_gas_estimator.utils import eth_client_utils
from aa_gas_estimator.utils.eth_client_utils import HttpEthClient

from conftest import execution_result_revert

NODES = ["http://a:8545", "http://b:8545"]
INCORRECT_PARAMS = {"code": -32602, "message": "Incorrect parameters count"}


class FakeResponse:
    def __init__(self, body: bytes):
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    async def read(self) -> bytes:
        return self.body


class FakeSession:
    """aiohttp ClientSession answering every post with `reply`."""

    def __init__(self, reply: dict, posts: list):
        self.reply = reply
        self.posts = posts

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs["json"]))
        return FakeResponse(json.dumps(self.reply).encode())


@pytest.fixture
def node_reply(monkeypatch):
    posts = []

    def set_reply(reply):
        monkeypatch.setattr(
            eth_client_utils,
            "ClientSession",
            lambda: FakeSession(reply, posts),
        )
        return posts
    return set_reply


@pytest.mark.asyncio
async def test_call_returns_output(node_reply):
    posts = node_reply({"jsonrpc": "2.0", "id": 1, "result": "0x1234"})

    output = await HttpEthClient(NODES).call(
        "0x01", "0xabcdef01", state_override_set={"0x02": {}})

    assert output == b"\x12\x34"
    url, request = posts[0]
    assert url == NODES[0]
    assert request["method"] == "eth_call"
    assert request["params"][1] == "latest"
    assert request["params"][2] == {"0x02": {}}


@pytest.mark.asyncio
async def test_call_returns_execution_error(node_reply):
    error = {
        "code": 3,
        "message": "execution reverted",
        "data": "0x1234",
    }
    posts = node_reply({"jsonrpc": "2.0", "id": 1, "error": error})

    with pytest.raises(RpcRequestException) as excinfo:
        await HttpEthClient(NODES).call("0x01", "0xabcdef01")
    assert excinfo.value.error == error
    assert len(posts) == 1


@pytest.mark.asyncio
async def test_call_returns_invalid_params_error(node_reply):
    posts = node_reply(
        {"jsonrpc": "2.0", "id": 1, "error": INCORRECT_PARAMS})

    with pytest.raises(RpcRequestException) as excinfo:
        await HttpEthClient(NODES).call(
            "0x01", "0xabcdef01", state_override_set={"0x02": {}})
    assert excinfo.value.error == INCORRECT_PARAMS
    assert len(posts) == 1


@pytest.mark.asyncio
async def test_rejected_state_override_is_a_validation_error(
    node_reply, user_operation_v6
):
    node_reply({"jsonrpc": "2.0", "id": 1, "error": INCORRECT_PARAMS})
    simulation_client = SimulationClient(HttpEthClient(NODES), EntryPointV6())

    with pytest.raises(ValidationException) as excinfo:
        await simulation_client.simulate_handle_op(user_operation_v6)
    assert excinfo.value.exception_code == \
        ValidationExceptionCode.SimulateValidation


@pytest.mark.asyncio
async def test_node_failure_is_retried_across_nodes(node_reply):
    posts = node_reply({
        "jsonrpc": "2.0",
        "id": 1,
        "error": {"code": -32601, "message": "method not found"},
    })

    with pytest.raises(ValueError):
        await HttpEthClient(NODES).call("0x01", "0xabcdef01")
    assert [url for url, _ in posts] == NODES * 2 + NODES[:1]


@pytest.mark.asyncio
async def test_simulation_through_http_client(node_reply, user_operation_v6):
    revert_error = execution_result_revert(50_000, 7).error
    node_reply({"jsonrpc": "2.0", "id": 1, "error": revert_error})
    simulation_client = SimulationClient(HttpEthClient(NODES), EntryPointV6())

    result = await simulation_client.simulate_handle_op(user_operation_v6)

    assert result.pre_op_gas == 50_000
    assert result.paid == 7
