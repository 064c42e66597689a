"""HTTP transport for the orchestrator."""
