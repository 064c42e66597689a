"""ragent: agent orchestration engine (tool-calling loop over a reasoning capability)."""

__version__ = "0.1.0"
