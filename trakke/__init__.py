"""Tråkke — category-driven POI and raster overlays for Norwegian geodata."""

__version__ = "0.1.0"
