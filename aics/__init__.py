"""AICS plugin host: manifest handling, installation, activation and the plugin Host API."""

__version__ = "1.0.0"
