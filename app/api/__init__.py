"""
API Blueprints
"""
