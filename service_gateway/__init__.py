"""
Newsfeed Gateway service.
"""
