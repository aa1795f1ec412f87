"""Catalog data sources, the identity map and the models they share."""
