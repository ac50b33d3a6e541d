"""
Pydantic models for API request/response schemas.

Kept separate from the pipeline types so the HTTP contract can change on its own.
"""
