from .static import BlockedError, FetchError, FetchResult, StaticFetcher

__all__ = ['BlockedError', 'FetchError', 'FetchResult', 'StaticFetcher']
