"""Progress tracker and aggregator."""
