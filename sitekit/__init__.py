"""Site Kit: connect a site to Google services over OAuth2."""

__version__ = "1.0.0"
