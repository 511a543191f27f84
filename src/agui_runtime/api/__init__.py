"""HTTP surface over live AG-UI runs."""
