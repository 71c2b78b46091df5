"""Calculation, severity and per-record validation stages."""
