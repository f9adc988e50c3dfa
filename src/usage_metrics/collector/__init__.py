"""Counter sources, samplers and the scheduled collector."""
