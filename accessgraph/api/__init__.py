"""HTTP surface for AccessGraph."""
