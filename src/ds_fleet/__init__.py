"""Fleet-wide Data Safe target selection and batch operations."""

__version__ = "0.1.0"
