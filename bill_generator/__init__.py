"""
                Bill Generator

Restaurant point-of-sale backend: restaurant accounts with subscription
plans, per-restaurant menus and immutable priced orders with printable bills.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
