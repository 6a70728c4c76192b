"""Leaf invoker: validation, timeout, retry with backoff, and error translation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
import time
from typing import Any

from swarmflow.cancellation import CancellationToken
from swarmflow.config.policy import RetryPolicy
from swarmflow.errors import (
    ErrorKind,
    InvocationError,
    InvocationTimeoutError,
    SwarmflowError,
)
from swarmflow.registry.contract import AgentContract
from swarmflow.utilities.logger_manager import (
    LoggerManager,
    MetricType,
    default_logger_manager,
)

from .transport import AgentTransport

RetryHook = Callable[[AgentContract, int, float, SwarmflowError], None]


@dataclass(frozen=True)
class InvocationOutcome:
    """Validated output of a successful call plus how many attempts it took."""

    output: Any
    attempts: int
    duration: float


class LeafInvoker:
    """Wraps ``transport.invoke`` with the contract's execution policy."""

    def __init__(
        self,
        transport: AgentTransport,
        *,
        retry_policy: RetryPolicy | None = None,
        logger_manager: LoggerManager | None = None,
    ) -> None:
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger_manager = logger_manager or default_logger_manager()
        self.logger = self.logger_manager.get_logger()

    def max_attempts(self, contract: AgentContract) -> int:
        if not contract.idempotent:
            return 1
        return 1 + min(contract.max_retries, self.retry_policy.max_retries_cap)

    async def invoke(
        self,
        contract: AgentContract,
        payload: Mapping[str, Any],
        *,
        token: CancellationToken | None = None,
        node_path: str = "",
        on_retry: RetryHook | None = None,
    ) -> InvocationOutcome:
        """Call the agent behind ``contract`` and return its validated output.

        Input is validated before any call is made. Failures are retried only
        for idempotent contracts; validation and cancellation errors are never
        retried.
        """
        token = token or CancellationToken()
        contract.validate_input(payload)
        max_attempts = self.max_attempts(contract)
        started = time.perf_counter()
        attempt = 0
        while True:
            token.raise_if_cancelled()
            attempt += 1
            try:
                output = await token.guard(
                    asyncio.wait_for(
                        self.transport.invoke(contract.ref, payload),
                        timeout=contract.timeout,
                    )
                )
            except asyncio.TimeoutError:
                error: SwarmflowError = InvocationTimeoutError(
                    f"{contract.ref} exceeded its {contract.timeout}s timeout"
                )
                self.logger_manager.log_metric(
                    "leaf_timeouts", 1, MetricType.COUNTER, tags={"agent": contract.name}
                )
            except SwarmflowError as exc:
                if exc.kind in (ErrorKind.VALIDATION, ErrorKind.CANCELLED):
                    exc.attempts = attempt
                    raise
                error = exc
            except Exception as exc:
                error = InvocationError(f"{contract.ref} failed: {exc}")
                error.__cause__ = exc
            else:
                contract.validate_output(output)
                return InvocationOutcome(
                    output=output,
                    attempts=attempt,
                    duration=time.perf_counter() - started,
                )

            error.attempts = attempt
            if not error.transient or attempt >= max_attempts:
                self.logger.warning(
                    f"Invocation of {contract.ref} failed after {attempt} attempt(s)",
                    extra={
                        "context": {
                            "node": node_path,
                            "agent": str(contract.ref),
                            "error": str(error),
                            "idempotent": contract.idempotent,
                        }
                    },
                )
                raise error

            delay = self.retry_policy.delay_for(
                attempt, contract.backoff_base, contract.backoff_cap
            )
            self.logger.info(
                f"Retrying {contract.ref} in {delay:.3f}s",
                extra={
                    "context": {
                        "node": node_path,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": str(error),
                    }
                },
            )
            self.logger_manager.log_metric(
                "leaf_retries", 1, MetricType.COUNTER, tags={"agent": contract.name}
            )
            if on_retry is not None:
                on_retry(contract, attempt, delay, error)
            await token.sleep(delay)
