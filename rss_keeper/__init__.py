"""Feed ingestion, retention and date-filtered reading for RSS and Atom sources."""

__version__ = "0.1.0"
