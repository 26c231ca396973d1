"""
HomeworkHelper API

Backend for the HomeworkHelper mobile app: AI answers to homework questions,
question history with Reddit-style voting, and admin analytics dashboards.
"""

__version__ = '1.0.0'
