"""Exporters receiving collected samples."""
