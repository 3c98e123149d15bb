"""Top-level instrux commands (one module per command)."""
