"""Logging and metrics for kubemirror."""
