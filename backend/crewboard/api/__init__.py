"""HTTP routers for the agent execution backend."""
