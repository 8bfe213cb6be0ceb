"""Diagnostics for the LightTools session connection and runs."""
