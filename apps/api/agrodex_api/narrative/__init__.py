"""Narrative generator gateway."""
