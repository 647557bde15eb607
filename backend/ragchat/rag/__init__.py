"""
RAG package — retrieval-augmented answer composition.

    ResponseComposer   — ragchat.rag.composer
    prompt templates   — ragchat.rag.prompts
"""

from ragchat.rag.composer import ComposedResponse, ResponseComposer, RetrievedChunkRef

__all__ = ["ResponseComposer", "ComposedResponse", "RetrievedChunkRef"]
