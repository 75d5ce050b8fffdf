"""Lookbook Studio: fashion visualization pipeline on a multimodal image model."""
__version__ = "1.0.0"
