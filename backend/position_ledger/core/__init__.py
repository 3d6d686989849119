"""Process-level setup helpers (logging, telemetry)."""
