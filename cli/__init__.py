"""
Command-line interface for the E-Learning data layer
"""
