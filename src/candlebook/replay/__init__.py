"""Replay of recorded raw logs."""
