"""Structured logging."""

from paper_agents.logging.setup import bind_agent, get_logger, setup_logging

__all__ = ["bind_agent", "get_logger", "setup_logging"]
