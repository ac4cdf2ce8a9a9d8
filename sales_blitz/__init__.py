"""Sales blitz: account trend categorization engine"""

__version__ = "0.1.0"
