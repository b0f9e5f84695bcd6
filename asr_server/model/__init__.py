"""Model resources, decoder sessions and result types."""
