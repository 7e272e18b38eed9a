"""Natural-language deadline and task extraction."""

__version__ = "0.1.0"
