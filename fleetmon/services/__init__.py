"""Inventory persistence, config generation, remote execution and deployment."""
