from heysme_agent.prompt.manager import PromptManager

__all__ = ["PromptManager"]
