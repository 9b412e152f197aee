"""API routers for zkleader."""
