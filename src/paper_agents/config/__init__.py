"""Configuration system."""

from paper_agents.config.loader import load_config
from paper_agents.config.schema import AgentConfig, AppConfig, RiskConfig

__all__ = ["AgentConfig", "AppConfig", "RiskConfig", "load_config"]
