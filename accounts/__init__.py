"""accounts/ -- Account provisioning for dogrun-auth.

Layer rule: accounts/ imports from auth/ and core/.
It does NOT import from api/.
"""
