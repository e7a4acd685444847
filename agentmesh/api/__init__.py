"""API layer — FastAPI front end."""
