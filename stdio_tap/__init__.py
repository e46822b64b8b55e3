"""Transparent command wrapper that records stdin/stdout/stderr traffic to a log file."""
