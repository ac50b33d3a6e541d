"""Story generator: compose story templates with products and drive hosted image models."""

__version__ = "1.0.0"
