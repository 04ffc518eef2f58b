"""Core spectral-to-spatial mapping modules."""
