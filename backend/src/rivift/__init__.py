"""Presence-aware relay core for Rivift Connect."""
