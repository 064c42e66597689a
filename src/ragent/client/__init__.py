"""Clients that talk to the HTTP API."""
