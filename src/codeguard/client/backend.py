"""Analysis backend abstraction.

The orchestrator talks to the analysis service only through this
protocol, so tests and alternative transports can plug in their own
implementation.
"""

from typing import Any, Protocol, runtime_checkable

from codeguard.core.models import AnalysisPayload


@runtime_checkable
class AnalysisBackend(Protocol):
    """Interface of the remote analysis service."""

    async def analyze(
        self,
        payload: AnalysisPayload,
        *,
        request_id: str,
        mode: str,
    ) -> dict[str, Any]:
        """Submit code for analysis.

        Args:
            payload: Snippet or file set to analyze
            request_id: Identifier forwarded to the service for correlation
            mode: Analysis mode (quick | deep | full)

        Returns:
            The ``data`` member of the service response, unvalidated

        Raises:
            AnalysisError: Tagged with the failure kind
        """
        ...

    async def health(self) -> dict[str, Any]:
        """Probe the service.

        Returns:
            Health payload (may carry a ``version``)

        Raises:
            AnalysisError: When the service is unreachable or unhealthy
        """
        ...
