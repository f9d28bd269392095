"""Command-line interface for fleetmon."""
