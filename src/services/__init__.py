"""
Services package for the recurring series engine.
"""
