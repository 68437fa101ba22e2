"""
Property Acquisition (propacq)
Cost-aware property data acquisition across two external providers
"""

__version__ = "0.1.0"
__author__ = "propacq Team"

from . import config, data, domain, orchestration, utils

__all__ = ["config", "data", "domain", "orchestration", "utils"]
