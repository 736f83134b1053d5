"""Authentication and authorization.

Two ways to be authenticated:
1. Browser session → signed session cookie set after the GitHub OAuth callback
2. cargo / CI → API token in the Authorization header

Both resolve to a User. Authorization over a resource is a Rights value
computed from the resource's owner list (users and teams).
"""
