"""Manual status overrides."""
