"""Offline-first focus timer with task and quote collections."""
