"""Financial integrity engine for the equipment-leasing platform."""

__version__ = "0.1.0"
