# hl7mapper/__init__.py
"""Map JSON documents onto HL7 v2 segment positions."""

__version__ = "0.1.0"
