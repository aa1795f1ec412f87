"""Core matching, cross-referencing and episode binding logic for anidbnfo."""
