"""Engine core: auction lifecycle, bidding, scheduling and events."""
