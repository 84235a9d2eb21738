"""
Swap API client: authenticated request pipeline, response caching,
single-flight token refresh and local-first sync of ROSCA resources.
"""
