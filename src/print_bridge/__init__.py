"""
WMS Print Bridge.

Local WebSocket daemon that lets browser clients list printers and submit
PDF, image and label (CPCL/ZPL) print jobs.
"""

__version__ = '1.4.0'
