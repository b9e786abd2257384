"""Geographic helpers: national bounds, viewport windows, projection."""
