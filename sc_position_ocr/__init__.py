"""Zone and position telemetry extraction from the Star Citizen HUD."""

__version__ = "0.1.0"
