"""concept-tracker: knowledge base of technical concepts extracted from conversations."""

__version__ = "0.3.0"
