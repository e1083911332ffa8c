"""
Core modules for Transcribomatic.

This package contains token signing and validation, usage accounting,
cost calculation and weekly spend enforcement.
"""
