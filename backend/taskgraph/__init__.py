"""Task dependency graph: validated edges, traversal, critical path and
schedule risk for project tasks."""
