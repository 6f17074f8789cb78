"""Request and response schemas for the session API."""
