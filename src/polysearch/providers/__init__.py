from polysearch.providers import ddgs_provider, duckduckgo, http, npm, wikipedia

__all__ = ["ddgs_provider", "duckduckgo", "http", "npm", "wikipedia"]
