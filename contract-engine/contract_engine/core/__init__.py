"""Contract model, matching and verification primitives."""
