"""
CrudBench - cross-backend CRUD benchmark harness.
"""

__version__ = "0.1.0"
