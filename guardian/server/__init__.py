"""HTTP surface for Guardian checks."""
