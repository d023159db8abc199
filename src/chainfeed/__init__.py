"""Live reconciliation of hierarchical block, uncle and workshare feeds."""
