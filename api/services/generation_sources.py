"""The two places raw dashboard text can come from."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Protocol

from .dashboard_errors import BackendError, GenerationTimeoutError
from .fallback_generator import generate_deterministic
from .llm_client import TextGenerationBackend, classify_backend_failure

if TYPE_CHECKING:  # pragma: no cover
    from .dashboard_orchestrator import GenerationAttemptContext

logger = logging.getLogger(__name__)


class GenerationSource(Protocol):
    async def produce(self, context: "GenerationAttemptContext") -> str:
        ...


class BackendSource:
    """Calls the model with the context's current prompt and sampling.

    On timeout we stop waiting but leave the call running: the shielded task
    finishes (or fails) on its own and its result is discarded.
    """

    def __init__(self, backend: TextGenerationBackend, timeout_seconds: Optional[float]) -> None:
        self.backend = backend
        self.timeout_seconds = timeout_seconds

    async def produce(self, context: "GenerationAttemptContext") -> str:
        task = asyncio.ensure_future(self.backend.generate(context.prompt, context.sampling))
        try:
            raw = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            task.add_done_callback(_discard_result)
            raise GenerationTimeoutError(
                f"Backend did not answer within {self.timeout_seconds}s"
            ) from exc
        except BackendError:
            raise
        except Exception as exc:
            raise classify_backend_failure(exc) from exc
        return raw if isinstance(raw, str) else ""


def _discard_result(task: "asyncio.Future[str]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info("dashboard_abandoned_call_failed", extra={"error_type": type(exc).__name__})


class DeterministicSource:
    async def produce(self, context: "GenerationAttemptContext") -> str:
        return generate_deterministic(context.profile, context.date_iso, context.generated_at)
