"""
                Tableside Ordering Platform

Multi-tenant restaurant ordering backend: guest and customer order
submission, a strict order lifecycle, and a polling kitchen display.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
