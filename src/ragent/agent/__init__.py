"""Orchestration loop, tool execution and per-run state."""
