"""
Leafwatch CLI - Command-line interface for inspector control.

Usage:
    leafwatch-cli enable-alert
    leafwatch-cli toggle-alert
    leafwatch-cli status
    leafwatch-cli watch --count 5
"""

__version__ = "1.0.0"
