"""Core domain package for spendwatch.

Core contains SMS parsing, classification, and deduplication logic without any
inbox or storage-specific code, keeping the business logic portable.
"""
