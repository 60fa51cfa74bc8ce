"""Knowledge base CMS."""

__version__ = "0.1.0"
