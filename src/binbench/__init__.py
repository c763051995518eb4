"""binbench — build, benchmark and size-report pipeline for compiled CLI tools."""

__version__ = "0.1.0"
