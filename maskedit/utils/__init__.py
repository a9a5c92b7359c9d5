"""Image codec helpers."""
