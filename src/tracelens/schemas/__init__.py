"""Pydantic schemas for spans, dependency links and job configuration."""
