"""Core scene engine for AgentCanvas (no UI or network dependencies)."""
