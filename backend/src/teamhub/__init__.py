"""TeamHub - team task management with paid team memberships."""

__version__ = "1.0.0"
