"""HTTP surface for the provider gateway."""
