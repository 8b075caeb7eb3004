"""Ingredient-match recipe query and cache engine."""
