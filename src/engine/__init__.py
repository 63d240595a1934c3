"""Action scheduling engine for castle clusters.

Builds a dependency graph over per-node actions and runs the closure of
the requested targets concurrently, respecting intra-node and cross-node
ordering.
"""
