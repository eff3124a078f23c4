"""Core components of the agent relay."""

from .orchestrator import ConversationOrchestrator, locate_agent_reply

__all__ = ["ConversationOrchestrator", "locate_agent_reply"]
