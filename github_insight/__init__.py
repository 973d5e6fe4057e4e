"""github-insight: resilient multi-source fetching from GitHub's GraphQL API."""

__version__ = "0.1.0"
