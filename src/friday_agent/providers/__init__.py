from typing import Dict, Sequence

from friday_agent.config import ANTHROPIC, GEMINI, OPENAI, CredentialStore
from friday_agent.domain.contracts import AdvisorCapability
from friday_agent.providers.advisors import GeminiAdvisor, OpenAIAdvisor
from friday_agent.providers.anthropic_provider import AnthropicProvider
from friday_agent.providers.errors import ModelInvocationError


def build_primary_provider(credentials: CredentialStore) -> AnthropicProvider:
    return AnthropicProvider(api_key=credentials.require(ANTHROPIC))


def build_advisors(names: Sequence[str], credentials: CredentialStore) -> Dict[str, AdvisorCapability]:
    """Advisor capabilities for the enabled names, keyed by advisor name.

    A missing advisor key is not fatal: the advisor answers with an error
    naming the environment variable.
    """
    advisors: Dict[str, AdvisorCapability] = {}
    for name in names:
        if name == OPENAI:
            advisors[name] = OpenAIAdvisor(api_key=credentials.get(OPENAI))
        elif name == GEMINI:
            advisors[name] = GeminiAdvisor(api_key=credentials.get(GEMINI))
    return advisors


__all__ = [
    "AnthropicProvider",
    "GeminiAdvisor",
    "ModelInvocationError",
    "OpenAIAdvisor",
    "build_advisors",
    "build_primary_provider",
]
