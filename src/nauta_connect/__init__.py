"""
Session automation for a captive WiFi portal: detect, log in, query remaining time, log out.
"""

__version__ = "0.1.0"
