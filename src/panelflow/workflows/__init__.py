"""Multi-panel workflows built on the resolution engine."""
