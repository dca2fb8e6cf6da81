"""Story Crafter: ideas, scripts and scene prompts for AI video generation."""

__version__ = "0.1.0"
