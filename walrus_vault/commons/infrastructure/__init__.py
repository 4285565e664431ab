"""Infrastructure providers shared across the package."""
