"""Category catalog, checkbox tree and activation state."""
