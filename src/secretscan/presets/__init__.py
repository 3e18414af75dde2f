"""Bundled configuration presets, referenced as ``extends: preset:<name>``."""
