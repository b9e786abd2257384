"""Overlay rendering: toolkit-agnostic core plus the PyQt5 host."""
