"""Sticky failover across an ordered list of interchangeable endpoints.

The rotator owns a cursor into its endpoint list. Each call makes at most one
full pass starting at the cursor; when a later endpoint answers after earlier
ones failed, the cursor moves there and stays (it never drifts back to the
preferred endpoint by itself).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class RotationState(Enum):
    TRYING = "trying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class RotationPass:
    """State machine for one pass over ``size`` endpoints starting at ``start``.

    ``Trying(i)`` moves to ``Succeeded(i)`` on success or to ``Trying(i+1)``
    (modulo ``size``) on failure, until every endpoint has been tried once,
    at which point the pass is ``Exhausted``.
    """

    size: int
    start: int
    state: RotationState = RotationState.TRYING
    attempts: int = 0

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError("Rotation pass needs at least one endpoint")
        if not 0 <= self.start < self.size:
            raise ValueError(f"Start index {self.start} outside 0..{self.size - 1}")

    @property
    def index(self) -> Optional[int]:
        """Endpoint position under test, or None once exhausted"""
        if self.state is RotationState.EXHAUSTED:
            return None
        return (self.start + self.attempts) % self.size

    def fail(self) -> "RotationPass":
        if self.state is not RotationState.TRYING:
            raise RuntimeError(f"Cannot record a failure in state {self.state.value}")
        self.attempts += 1
        if self.attempts >= self.size:
            self.state = RotationState.EXHAUSTED
        return self

    def succeed(self) -> "RotationPass":
        if self.state is not RotationState.TRYING:
            raise RuntimeError(f"Cannot record a success in state {self.state.value}")
        self.state = RotationState.SUCCEEDED
        return self

    @property
    def moved(self) -> bool:
        """True when the pass succeeded somewhere other than where it started"""
        return self.state is RotationState.SUCCEEDED and self.index != self.start


class EndpointRotator:
    """Routes calls over a non-empty endpoint list with a sticky cursor."""

    def __init__(self, endpoints: Sequence[str], name: str = "rpc"):
        """Initialize rotator.

        Args:
            endpoints: Ordered endpoint URLs, most preferred first
            name: Capability name used in log events

        Raises:
            ValueError: If the endpoint list is empty
        """
        if not endpoints:
            raise ValueError("EndpointRotator requires at least one endpoint")

        self.endpoints: Tuple[str, ...] = tuple(endpoints)
        self.name = name
        self._cursor = 0

        self.logger = logger.bind(component="endpoint_rotator", capability=name)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current_endpoint(self) -> str:
        return self.endpoints[self._cursor]

    def start_pass(self) -> RotationPass:
        return RotationPass(size=len(self.endpoints), start=self._cursor)

    def reset(self) -> None:
        """Point the cursor back at the preferred endpoint"""
        self._cursor = 0

    async def call(
        self,
        operation: Callable[[str], Awaitable[T]],
        default: Any = None,
    ) -> Any:
        """Run ``operation`` against endpoints in rotation order.

        Args:
            operation: Async callable taking one endpoint URL
            default: Value returned when every endpoint fails

        Returns:
            The first successful result, or ``default`` after a full failed pass
        """
        rotation = self.start_pass()

        while rotation.state is RotationState.TRYING:
            endpoint = self.endpoints[rotation.index]
            try:
                result = await operation(endpoint)
            except Exception as e:
                self.logger.warning(
                    "endpoint_failed",
                    endpoint=_redact(endpoint),
                    attempt=rotation.attempts + 1,
                    error=str(e),
                )
                rotation.fail()
                continue

            rotation.succeed()
            if rotation.moved:
                # Last writer wins when concurrent calls fail over at once
                self._cursor = rotation.index
                self.logger.info(
                    "endpoint_failover",
                    from_index=rotation.start,
                    to_index=rotation.index,
                    endpoint=_redact(endpoint),
                )
            return result

        self.logger.error("all_endpoints_failed", endpoints=len(self.endpoints))
        return default


def _redact(endpoint: str) -> str:
    """Drop query strings, which commonly carry API keys"""
    return endpoint.split("?", 1)[0]
