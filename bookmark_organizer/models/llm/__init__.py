from bookmark_organizer.models.llm.llm_models import LLMCallResult, RetryHint, TokenUsage

__all__ = ["LLMCallResult", "RetryHint", "TokenUsage"]
