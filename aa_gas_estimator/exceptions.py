from dataclasses import dataclass
from enum import Enum
from typing import Any


class ValidationExceptionCode(Enum):
    InvalidFields = -32602
    SimulateValidation = -32500
    SimulatePaymasterValidation = -32501
    WalletTransactionReverted = -32000


@dataclass
class ValidationException(Exception):
    exception_code: ValidationExceptionCode
    message: str


class ExecutionExceptionCode(Enum):
    UserOperationReverted = -32521


@dataclass
class ExecutionException(Exception):
    exception_code: ExecutionExceptionCode
    message: str


@dataclass
class UnexpectedResponseException(Exception):
    message: str
    payload: Any = None


@dataclass
class SearchExhaustedException(Exception):
    message: str


@dataclass
class ConfigurationException(Exception):
    message: str


@dataclass
class RpcRequestException(Exception):
    """A JSON-RPC error object returned by the node, kept verbatim."""
    error: dict[str, Any]
