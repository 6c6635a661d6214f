"""
Integration modules for paybridge

Contains adapters for external payment providers.
"""
