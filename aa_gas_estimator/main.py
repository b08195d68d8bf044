import json
import logging
import sys

import uvloop

from aa_gas_estimator.exceptions import ConfigurationException, \
    ExecutionException, SearchExhaustedException, \
    UnexpectedResponseException, ValidationException
from aa_gas_estimator.gas.chains import create_gas_estimator
from aa_gas_estimator.gas.gas_estimator import EstimationParams
from aa_gas_estimator.metrics.metrics import run_metrics_server
from aa_gas_estimator.utils.eth_client_utils import HttpEthClient

from .cli_manager import parse_args


async def main(cmd_args=sys.argv[1:]) -> None:
    init_data = await parse_args(cmd_args)

    if init_data.is_metrics:
        run_metrics_server(port=init_data.metrics_port)

    eth_client = HttpEthClient(init_data.ethereum_node_urls)
    gas_estimator = create_gas_estimator(
        init_data.chain_id,
        eth_client,
        init_data.entrypoint_version,
        entrypoint_simulations_bytecode=(
            init_data.entrypoint_simulations_bytecode),
        verification_simulator_bytecode=(
            init_data.verification_simulator_bytecode),
        call_gas_simulator_bytecode=init_data.call_gas_simulator_bytecode,
    )
    if init_data.entrypoint is not None:
        gas_estimator.set_entrypoint_address(init_data.entrypoint)

    try:
        user_operation = gas_estimator.simulation_client.entrypoint \
            .parse_user_operation(init_data.user_operation)
        gas_estimate = await gas_estimator.estimate_user_operation_gas(
            EstimationParams(
                user_operation=user_operation,
                supports_state_override=init_data.supports_state_override,
                supports_code_override=init_data.supports_code_override,
                state_override_set=init_data.state_override_set,
                base_fee_per_gas=init_data.base_fee_per_gas,
            )
        )
    except (
        ValidationException,
        ExecutionException,
        SearchExhaustedException,
        ConfigurationException,
    ) as excp:
        logging.critical(f"Gas estimation failed: {excp.message}")
        sys.exit(1)
    except UnexpectedResponseException as excp:
        logging.critical(
            f"Gas estimation failed: {excp.message} payload: {excp.payload}")
        sys.exit(1)
    print(json.dumps(gas_estimate.to_json(), indent=2))


def run() -> None:
    uvloop.run(main())
