"""
HTTP layer package marker.
"""
