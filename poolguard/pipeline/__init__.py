"""Scenario orchestration, built-in suites and the parallel runner."""
