"""
Backend package for the blessing tree page.

This package provides a FastAPI application that stores per-user tree
profiles (a blessing and a list of uploaded photos) in a single JSON file
and hands out short links for sharing them.
"""
