"""Deck import from .pptx archives and images."""
from .deck_importer import import_deck, import_images, import_pptx, demo_deck

__all__ = ["import_deck", "import_images", "import_pptx", "demo_deck"]
