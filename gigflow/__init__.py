"""Job-application lifecycle engine for short-term gig work."""

__version__ = "0.1.0"
