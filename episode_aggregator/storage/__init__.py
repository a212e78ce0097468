"""
Storage module for handling data persistence.
"""
