"""Provenance store package."""
