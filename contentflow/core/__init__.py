"""Core configuration, logging, errors and retry helpers."""
