"""auth/ -- Admin authentication, share-link sessions and access control for ReviewDesk.

Layer rule: auth/ imports stdlib, third-party libraries, core/ and cache/.
It does NOT import from api/, review/ or sales/ at runtime.
api/ imports from auth/, not the other way around.
"""
