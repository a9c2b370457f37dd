# FILE: manga_viewer/models/__init__.py
"""
Pydantic models for request/response validation
"""
from manga_viewer.models.collections import *
