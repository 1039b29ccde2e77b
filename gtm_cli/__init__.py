"""GTM CLI - command-line interface for Google Tag Manager."""

__version__ = "1.0.0"
