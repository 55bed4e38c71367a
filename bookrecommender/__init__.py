"""Book Recommender - Core Application Package

This package contains the core application modules including:
- Catalog index and search (catalog.py)
- Personal libraries (libraries.py)
- Ratings and recommendations (ratings.py, recommendations.py)
- Aggregated statistics (aggregation.py)
- Persistence backends (storage/, database.py)
- API endpoints (api.py) and CLI interface (main.py)
"""

__version__ = "1.0.0"
