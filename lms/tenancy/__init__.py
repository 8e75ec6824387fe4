"""Tenant scoping: organization and learner identity resolution."""
