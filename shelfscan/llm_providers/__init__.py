from .client import OpenAIClient, create_llm_client

__all__ = ["OpenAIClient", "create_llm_client"]
