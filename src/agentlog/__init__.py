"""agentlog: result extraction and log streaming for containerized agent sessions."""

__version__ = "0.1.0"
