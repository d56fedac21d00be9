"""
Cache Domain Module

Value objects, exceptions and the store contract for the text entry cache.
"""
