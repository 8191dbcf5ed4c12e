"""component-radar: find every instance of a main component across design files."""

__version__ = "0.1.0"
