"""Statistical analysis pipeline: tabular uploads + free-text instructions -> results and charts."""

__version__ = "0.1.0"
