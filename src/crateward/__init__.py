"""crateward — identity and access control for a package registry.

Reconciles GitHub OAuth identities into local users, issues and checks
API tokens, runs email verification, and resolves ownership rights.
"""

__version__ = "0.1.0"
