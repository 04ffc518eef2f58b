"""Feature sources and snapshot export."""
