"""
Client side of the on-chain iterative search protocol.

A simulator contract runs the binary search inside a single EVM call. When
the gas of that call runs out before the search converges it reverts with a
continuation carrying the bounds reached so far, and the host has to call
again with those bounds. The loop below is that state machine:

    Continuation -> call again -> Result | RevertAtMax | Continuation
"""
import logging
from typing import Awaitable, Callable

from aa_gas_estimator.exceptions import SearchExhaustedException
from aa_gas_estimator.gas.constants import MAX_CONTINUATION_ROUNDS
from aa_gas_estimator.user_operation.models import ContinuationSignal, \
    ResultSignal, RevertAtMaxSignal, SearchSignal

IssueCall = Callable[[int, int, bool], Awaitable[SearchSignal]]


async def run_continuation_search(
    issue_call: IssueCall,
    min_gas: int,
    max_gas: int,
    max_rounds: int = MAX_CONTINUATION_ROUNDS,
) -> ResultSignal | RevertAtMaxSignal:
    is_continuation = False
    round_trips = 0
    while True:
        signal = await issue_call(min_gas, max_gas, is_continuation)
        round_trips += 1

        if not isinstance(signal, ContinuationSignal):
            return signal

        logging.debug(
            f"search continuation: min gas {signal.min_gas}, "
            f"max gas {signal.max_gas}, rounds {signal.num_rounds}"
        )
        # only round trips are capped, num_rounds is the simulator's own count
        if round_trips >= max_rounds:
            raise SearchExhaustedException(
                f"Gas search did not converge after {round_trips} round trips"
            )
        min_gas = signal.min_gas
        max_gas = signal.max_gas
        is_continuation = True
