from llm.openai_client import OpenAIChatClient, to_wire

__all__ = ["OpenAIChatClient", "to_wire"]
