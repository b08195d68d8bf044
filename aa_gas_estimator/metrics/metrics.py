import logging
from prometheus_client import Counter, Summary, start_http_server

REQUEST_TIME_estimateUserOperationGas = Summary(
    "request_processing_seconds_estimateUserOperationGas",
    "Time spent processing request estimateUserOperationGas",
)
REQUEST_TIME_estimateVerificationGasLimit = Summary(
    "request_processing_seconds_estimateVerificationGasLimit",
    "Time spent processing request estimateVerificationGasLimit",
)
REQUEST_TIME_estimateCallGasLimit = Summary(
    "request_processing_seconds_estimateCallGasLimit",
    "Time spent processing request estimateCallGasLimit",
)
REQUEST_TIME_calculatePreVerificationGas = Summary(
    "request_processing_seconds_calculatePreVerificationGas",
    "Time spent processing request calculatePreVerificationGas",
)

SIMULATION_CALLS = Counter(
    "simulation_calls",
    "Number of eth_call simulations issued",
    ["entrypoint_version"],
)
FAILED_SIMULATIONS = Counter(
    "failed_simulations",
    "Number of simulations that ended in a FailedOp style revert",
    ["entrypoint_version"],
)


def run_metrics_server(host="localhost", port=8000):
    """
    run prometheus metrics server
    """
    logging.info(f"Starting Metrics Http Server at: {host}:{port}")
    start_http_server(port, addr=host)
