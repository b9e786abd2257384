"""Unified POI model and the normalizer that produces it."""
