from .provider import RateFetcher

__all__ = ["RateFetcher"]
