"""Keeps saved businesses' opening hours in sync with a remote directory."""
