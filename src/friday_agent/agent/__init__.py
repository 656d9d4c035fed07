from friday_agent.agent.loop import AgentLoop
from friday_agent.agent.orchestrator import Orchestrator

__all__ = ["AgentLoop", "Orchestrator"]
