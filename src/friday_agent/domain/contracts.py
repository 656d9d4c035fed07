from typing import Any, Dict, Protocol, Sequence

from friday_agent.domain.approvals import ApprovalChoice, PendingWrite
from friday_agent.domain.tasks import AdvisorResponse


class ModelCapability(Protocol):
    async def generate_with_tools(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]],
        system: str = "",
        correlation_id: str = "",
    ) -> Dict[str, Any]:
        ...

    async def version(self) -> str:
        ...


class AdvisorCapability(Protocol):
    name: str

    async def ask(self, prompt: str, correlation_id: str = "") -> AdvisorResponse:
        ...


class ApprovalGate(Protocol):
    def render(self, pending: PendingWrite) -> None:
        ...

    def decide(self, pending: PendingWrite) -> ApprovalChoice:
        ...

    def report(self, path: str, choice: ApprovalChoice) -> None:
        ...
