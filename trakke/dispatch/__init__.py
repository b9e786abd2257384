"""Dispatch cycles and the per-session context that drives them."""
