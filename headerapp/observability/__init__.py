"""Prometheus counters for header resolution."""
