"""auth/ -- Credential lifecycle package for TokenRotor.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/
for settings-driven constructors. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
