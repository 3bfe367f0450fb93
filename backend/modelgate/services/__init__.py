"""
Selection, performance and verification services.
"""
