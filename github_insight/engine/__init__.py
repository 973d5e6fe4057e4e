"""Resilient multi-source fetch engine.

This package provides the pieces that turn single GraphQL page calls into
complete, failure-isolated results across many upstream collections.

Key Components:
    - classifier: Maps raw errors to RateLimited / Retryable / NonRetryable
    - pagination.PaginatedFetcher: Cursor loop for one source, with
      two-shape (user vs organization) fallback
    - parallel_executor.ConcurrentMultiSourceFetcher: Bounded fan-out over
      many sources with per-source failure isolation
    - cross_reference.CrossReferenceResolver: Merges timeline events and text
      mentions into a deduplicated link list

The retry driver lives in ``github_insight.utils.retry``.

Example:
    >>> from github_insight.engine.parallel_executor import ConcurrentMultiSourceFetcher
    >>> fetcher = ConcurrentMultiSourceFetcher(max_concurrency=10)
    >>> result = await fetcher.fetch_many(sources, fetch_one)
    >>> result.failures
    {}
"""
