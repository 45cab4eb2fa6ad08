"""Event and telemetry listeners."""
