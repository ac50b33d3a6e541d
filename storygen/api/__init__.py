"""
FastAPI application layer.

Exposes the story pipeline over HTTP so a browser front-end can pick images,
stitch them, generate stories and iterate on their text.
"""
