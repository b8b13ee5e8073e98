"""Command-line interface for datavcs."""
