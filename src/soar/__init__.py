"""Soar - command-line client for the Pterodactyl panel REST API."""

__version__ = "0.3.0"
