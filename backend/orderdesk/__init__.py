"""
OrderDesk: order taking, pricing and payment reconciliation API.
"""
__version__ = "1.0.0"
