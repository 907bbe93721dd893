"""
Deterministic cross-chain contract deployment through a factory contract
"""

__version__ = "0.1.0"
