"""
Serverless entry point for the Position Tree API.

The platform imports ``app`` from this module; all routes live in
backend/main.py.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from backend.main import app  # noqa: E402,F401
