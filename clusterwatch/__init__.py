"""Storage cluster health monitoring and status reconciliation."""
