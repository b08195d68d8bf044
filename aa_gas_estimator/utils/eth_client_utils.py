from abc import ABC, abstractmethod
import asyncio
import json
import logging
import traceback
from typing import Any

from aiohttp import ClientSession

from aa_gas_estimator.exceptions import RpcRequestException
from aa_gas_estimator.utils.abi import ContractFunction

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# execution errors are answers, not node failures
EXECUTION_ERROR_CODES = (3, -32000, -32603)
# a node rejecting the state override set answers with invalid params
INVALID_PARAMS_ERROR_CODE = -32602
CALLER_ERROR_CODES = EXECUTION_ERROR_CODES + (INVALID_PARAMS_ERROR_CODE,)


async def send_rpc_request_to_eth_client(
    nodes_urls: list[str],
    method: str,
    params=None,
    expected_key: str | None = None,
    number_of_retry_attempts: int = 5,
    retry_delay: float = 1,
) -> Any:
    json_request = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": method,
        "params": params,
    }
    headers = {
        "content-type": "application/json",
        "connection": "keep-alive"
    }
    json_result = None
    nodes_len = len(nodes_urls)
    for i in range(number_of_retry_attempts):
        node_index = i % nodes_len
        if nodes_len > 1 and i > 0:
            logging.info(f'retrying with node no: {node_index + 1}.')
        chosen_node_url = nodes_urls[node_index]  # iterate through nodes
        try:
            async with ClientSession() as session:
                async with session.post(
                    chosen_node_url,
                    json=json_request,
                    headers=headers
                ) as response:
                    resp = await response.read()
                    json_result = json.loads(resp)
        except json.decoder.JSONDecodeError:
            logging.error(
                f"Attempt No. {i+1} to call node rpc failed."
                "Invalid json response from eth client."
            )
            await asyncio.sleep(retry_delay)
        except Exception as excp:
            logging.error(
                f"Attempt No. {i+1} to call node rpc failed."
                f"error: {str(excp)}"
            )
            logging.debug(f"traceback: {str(traceback.format_exc())}")
            await asyncio.sleep(retry_delay)
        else:
            if "error" in json_result:
                if "message" in json_result["error"]:
                    err_message = json_result["error"]["message"]
                else:
                    err_message = ""
                if (
                    "code" in json_result["error"] and
                    json_result["error"]["code"] not in CALLER_ERROR_CODES
                ):
                    err_code = json_result["error"]["code"]
                    logging.error(
                        f"Attempt No. {i+1} to call node rpc failed."
                        f"the request: {str(json_request)}"
                        f" with error code: {err_code}"
                        f" and error message: {err_message}."
                    )
                    continue
            elif expected_key is not None and expected_key not in json_result:
                logging.error(
                    f"Attempt No. {i+1} to call node rpc failed."
                    f"the request: {str(json_request)}"
                    f"as the key {expected_key} is not in the result: {str(json_result)}"
                )
                continue
            return json_result
    raise ValueError("Failed rpc request to rpc node client")


class EthClient(ABC):
    """The two node capabilities the estimator relies on."""

    @abstractmethod
    async def call(
        self,
        to: str,
        data: str,
        block_tag: str = "latest",
        state_override_set: dict[str, Any] | None = None,
    ) -> bytes:
        """eth_call. Raises RpcRequestException with the node's error
        object when the call reverts or is rejected."""

    async def read_contract(
        self,
        address: str,
        function: ContractFunction,
        args: list[Any],
        block_tag: str = "latest",
    ) -> tuple:
        result = await self.call(
            address, function.encode_call(args), block_tag)
        return function.decode_output(result)


class HttpEthClient(EthClient):
    nodes_urls: list[str]

    def __init__(self, nodes_urls: list[str]):
        self.nodes_urls = nodes_urls

    async def call(
        self,
        to: str,
        data: str,
        block_tag: str = "latest",
        state_override_set: dict[str, Any] | None = None,
    ) -> bytes:
        params: list[Any] = [
            {
                "from": ZERO_ADDRESS,
                "to": to,
                "data": data,
            },
            block_tag,
        ]
        if state_override_set is not None:
            params.append(state_override_set)

        result: Any = await send_rpc_request_to_eth_client(
            self.nodes_urls, "eth_call", params
        )
        if "error" in result:
            raise RpcRequestException(result["error"])
        if "result" not in result:
            raise ValueError(f"Invalid eth_call response: {result}")
        return bytes.fromhex(result["result"][2:])

    async def get_chain_id(self) -> int:
        result = await send_rpc_request_to_eth_client(
            self.nodes_urls, "eth_chainId", [], "result"
        )
        return int(result["result"], 16)
