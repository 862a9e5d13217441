"""Agent execution pipeline: skills, tools, providers, and the run orchestrator."""
