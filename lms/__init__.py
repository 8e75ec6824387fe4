"""Multi-tenant course delivery engine: catalog, enrollments and module progress."""

__version__ = "0.1.0"
