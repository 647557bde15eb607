"""
LLM Gateway Package

Public API::

    from ragchat.llm import LLMGateway

    gateway  = LLMGateway()
    response = await gateway.invoke(messages)
"""

from ragchat.llm.gateway import GatewayResponse, LLMGateway

__all__ = ["LLMGateway", "GatewayResponse"]
