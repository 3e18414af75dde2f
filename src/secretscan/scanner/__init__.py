"""Detection engine: tree walk, filters, detectors, and result aggregation."""
