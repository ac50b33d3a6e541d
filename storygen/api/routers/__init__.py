"""
API route handlers, one router per endpoint group (health, images, story).
"""
