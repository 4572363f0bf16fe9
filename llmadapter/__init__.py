"""Building blocks for a completion-style chat API server: models, control tags, matchers, responses and polling."""

__version__ = "3.0.0"