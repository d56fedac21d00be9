"""
Text Entry Domain Module

Response projections and errors for text entries.
"""
