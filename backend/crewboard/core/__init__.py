"""Core configuration, logging, and security primitives."""
