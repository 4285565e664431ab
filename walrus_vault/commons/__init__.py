"""Commons package - settings, telemetry and network providers."""
