"""Core domain package for the exception notifier.

Core contains fingerprinting, throttling and composition logic without any
filesystem or transport-specific code, keeping the business logic portable.
"""
