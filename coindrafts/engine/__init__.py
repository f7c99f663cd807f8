"""Contest settlement engine: price oracle, snapshots, scoring and lifecycle triggers."""
