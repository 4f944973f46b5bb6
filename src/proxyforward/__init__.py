"""Forward local TCP ports to remote hosts through an HTTP CONNECT proxy."""

__version__ = "0.1.0"
