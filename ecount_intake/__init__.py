"""Natural-language order intake for the Ecount ERP."""

__version__ = "0.1.0"
