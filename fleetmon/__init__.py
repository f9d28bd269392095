"""fleetmon - inventory-driven monitoring agent deployment."""

__version__ = "1.0.0"
