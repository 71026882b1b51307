"""Allow running the agent host as: python -m paper_agents.agent [--config path]."""

from paper_agents.agent.runner import cli

cli()
