"""Checkers that turn before/after pool state into invariant verdicts."""
