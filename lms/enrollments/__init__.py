"""Enrollment registry, groups and group admission control."""
