"""Animato: story-to-video generation workflow service."""

__version__ = "0.1.0"
