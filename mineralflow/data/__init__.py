# Deterministic fallback data
