"""Domain services for the agent execution backend."""
