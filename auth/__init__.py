"""auth/ -- Authentication and authorization package for dogrun-auth.

Layer rule: auth/ imports stdlib, third-party libraries and core/.
It does NOT import from api/ or accounts/.
api/ and accounts/ import from auth/, not the other way around.
"""
