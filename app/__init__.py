"""
                Restaurant Order Broadcast Service

Real-time order hub: clients create and complete restaurant orders and
every connected client receives the updated order list.

Author: Khalil_Bannouri
Version: 4.0.0
License: MIT
"""

__version__ = "4.0.0"
__author__ = "Khalil_Bannouri"
