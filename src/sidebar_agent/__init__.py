"""Agent Sidebar: orchestration core of an in-browser AI agent."""

__version__ = "0.1.0"
