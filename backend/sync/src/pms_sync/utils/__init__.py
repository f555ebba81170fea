"""Shared utilities for the PMS sync subsystem."""
