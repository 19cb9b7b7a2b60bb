"""Domain layer - keys, key ranges, store options and the cursor scan plan."""
