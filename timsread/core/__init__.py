# timsread/core/__init__.py
"""Value types and the abstract reader contract shared by all readers."""
