# Agents package
# agents/__init__.py
"""One agent per pipeline stage, each wrapping a single collaborator"""
