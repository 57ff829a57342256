"""Lesson variants and their exercises."""
