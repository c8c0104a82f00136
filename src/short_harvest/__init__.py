"""Harvester of regulatory short position disclosures."""

__version__ = "0.3.0"
