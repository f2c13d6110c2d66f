"""
HTTP layer: page routers, the invite function, and template rendering.
"""
