"""planstudio: versioned image edit orchestration for floor plans and room photos."""

__version__ = "1.0.0"
