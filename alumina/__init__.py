"""
Backend package for Alumina At Home.

This package provides a FastAPI application with database and storage
abstractions for the daily protocol tracker: profiles, protocol completions,
streaks, points, achievements and the equipment/video catalog.
"""
