"""Aggregate timing statistics over Buildkite build history."""

__version__ = "0.1.0"
