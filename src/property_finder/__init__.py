"""Swiss rental listing search across several sources."""

__version__ = "0.1.0"
