"""AdProfit sync & aggregation service"""

__version__ = "1.0.0"
