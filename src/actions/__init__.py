"""Castle actions: the per-node units of work that roles contribute."""
