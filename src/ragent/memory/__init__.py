"""Vector storage and long-term memory."""
