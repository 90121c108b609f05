"""Blueprint packages; each exposes its Blueprint object from routes.py."""
