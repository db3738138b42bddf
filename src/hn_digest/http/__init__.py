"""HTTP fetching and article body extraction."""
