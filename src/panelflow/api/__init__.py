"""FastAPI surface for Panelflow."""
