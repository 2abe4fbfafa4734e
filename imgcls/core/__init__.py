"""Core primitives: exceptions, logging, reproducibility."""
