"""
FastAPI dependencies: session storage, the model manager and the image catalog.
"""
