"""Pure access rules: role ordering, capability matching, scope and expiry math."""
