"""Journey planning engine over a static GTFS-like transit schedule."""
