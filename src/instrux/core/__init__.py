"""Core library for instrux: composition engine, configuration and build."""
