"""Utility helpers for HealSync."""
