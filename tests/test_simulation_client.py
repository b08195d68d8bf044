import pytest

from aa_gas_estimator.exceptions import ConfigurationException, \
    UnexpectedResponseException
from aa_gas_estimator.gas.constants import SIMULATION_SENDER_BALANCE
from aa_gas_estimator.simulation.entrypoint import EntryPointV6, \
    EntryPointV7
from aa_gas_estimator.simulation.simulation_client import \
    SimulationCapabilities, SimulationClient
from aa_gas_estimator.simulation.state_override import \
    calculate_deposit_slot_index
from aa_gas_estimator.user_operation.models import ExecutionResult, \
    FailedSimulation

from conftest import FakeEthClient, PAYMASTER, SENDER, \
    execution_result_revert, failed_op_revert, raising, revert

SIMULATIONS_CODE = "0x6001600155"
CALLER_OVERRIDES = {SENDER: {"nonce": "0x5"}}


@pytest.mark.asyncio
async def test_full_capabilities(user_operation_v6_json):
    user_operation_v6_json["paymasterAndData"] = PAYMASTER
    user_operation = EntryPointV6().parse_user_operation(
        user_operation_v6_json)
    eth_client = FakeEthClient(raising(execution_result_revert(50_000, 7)))
    simulation_client = SimulationClient(
        eth_client, EntryPointV6(), SIMULATIONS_CODE)

    result = await simulation_client.simulate_handle_op(
        user_operation, state_override_set=CALLER_OVERRIDES)

    assert result == ExecutionResult(50_000, 7, 0, 0, False, b"")
    call = eth_client.calls[0]
    entrypoint_address = EntryPointV6().address
    assert call.to == entrypoint_address
    assert call.state_override_set[SENDER] == {
        "balance": hex(SIMULATION_SENDER_BALANCE),
        "nonce": "0x5",
    }
    entrypoint_override = call.state_override_set[entrypoint_address]
    assert entrypoint_override["code"] == SIMULATIONS_CODE
    assert calculate_deposit_slot_index(PAYMASTER.lower()) in \
        entrypoint_override["stateDiff"]


@pytest.mark.asyncio
async def test_state_override_only(user_operation_v6):
    eth_client = FakeEthClient(raising(execution_result_revert(50_000, 0)))
    simulation_client = SimulationClient(
        eth_client, EntryPointV6(), SIMULATIONS_CODE)

    await simulation_client.simulate_handle_op(
        user_operation_v6,
        capabilities=SimulationCapabilities(supports_code_override=False),
    )

    state_overrides = eth_client.calls[0].state_override_set
    assert SENDER in state_overrides
    assert EntryPointV6().address not in state_overrides


@pytest.mark.asyncio
async def test_no_overrides(user_operation_v6):
    eth_client = FakeEthClient(
        raising(failed_op_revert("AA21 didn't pay prefund")))
    simulation_client = SimulationClient(eth_client, EntryPointV6())

    result = await simulation_client.simulate_handle_op(
        user_operation_v6,
        capabilities=SimulationCapabilities(False, False),
        state_override_set=CALLER_OVERRIDES,
    )

    assert result == FailedSimulation("AA21 didn't pay prefund")
    assert eth_client.calls[0].state_override_set is None


@pytest.mark.asyncio
async def test_v7_requires_simulations_bytecode(user_operation_v7):
    eth_client = FakeEthClient(lambda eth_call: b"")
    simulation_client = SimulationClient(eth_client, EntryPointV7())

    with pytest.raises(ConfigurationException):
        await simulation_client.simulate_handle_op(user_operation_v7)
    assert eth_client.calls == []


@pytest.mark.asyncio
async def test_v6_simulation_did_not_revert(user_operation_v6):
    simulation_client = SimulationClient(
        FakeEthClient(lambda eth_call: b"\x00" * 32), EntryPointV6())
    with pytest.raises(UnexpectedResponseException):
        await simulation_client.simulate_handle_op(user_operation_v6)


@pytest.mark.asyncio
async def test_call_simulator_returns_revert_data(user_operation_v6):
    eth_client = FakeEthClient(raising(revert(b"\x12\x34\x56\x78")))
    simulation_client = SimulationClient(eth_client, EntryPointV6())

    revert_data = await simulation_client.call_simulator(
        user_operation_v6, "0xabcdef01", SIMULATIONS_CODE)

    assert revert_data == b"\x12\x34\x56\x78"
    call = eth_client.calls[0]
    assert call.data == "0xabcdef01"
    assert call.state_override_set[call.to]["code"] == SIMULATIONS_CODE


@pytest.mark.asyncio
async def test_call_simulator_did_not_revert(user_operation_v6):
    simulation_client = SimulationClient(
        FakeEthClient(lambda eth_call: b"\x01"), EntryPointV6())
    with pytest.raises(UnexpectedResponseException):
        await simulation_client.call_simulator(
            user_operation_v6, "0xabcdef01", SIMULATIONS_CODE)
