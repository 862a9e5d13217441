"""Crewboard agent execution backend."""
