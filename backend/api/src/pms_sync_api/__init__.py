"""FastAPI application for the PMS sync subsystem."""
