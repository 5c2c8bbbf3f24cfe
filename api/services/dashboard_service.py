"""Entry point used by the API: serial queue in front of the orchestrator."""

from __future__ import annotations

from typing import Optional

from ..schemas.dashboard import DashboardPayload, Profile, SessionSnapshot
from .dashboard_orchestrator import DEFAULT_BACKEND_TIMEOUT_SECONDS, DEFAULT_MAX_MODEL_CALLS, DashboardOrchestrator
from .dashboard_prompt import SYSTEM_PROMPT
from .inproc_queue import GenerationQueue
from .llm_client import LocalModelBackend


class DashboardService:
    def __init__(self, orchestrator: DashboardOrchestrator, queue: Optional[GenerationQueue] = None) -> None:
        self.orchestrator = orchestrator
        self.queue = queue or GenerationQueue()

    async def run(
        self, profile: Profile, date_iso: str, session: Optional[SessionSnapshot] = None
    ) -> DashboardPayload:
        return await self.queue.submit(lambda: self.orchestrator.run(profile, date_iso, session))


_service: Optional[DashboardService] = None


def get_dashboard_service() -> DashboardService:
    global _service
    if _service is None:
        backend = LocalModelBackend(system_prompt=SYSTEM_PROMPT)
        orchestrator = DashboardOrchestrator(
            backend,
            max_calls=DEFAULT_MAX_MODEL_CALLS,
            timeout_seconds=DEFAULT_BACKEND_TIMEOUT_SECONDS,
        )
        _service = DashboardService(orchestrator)
    return _service
