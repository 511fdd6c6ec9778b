"""Guided two-shot photo session with face alignment and background compositing."""

from .core.constants import VERSION

__version__ = VERSION
