"""
DadCircles application package.
"""
