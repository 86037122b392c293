"""TripMerge — travel offer aggregation, ranking, clustering and deal detection."""
