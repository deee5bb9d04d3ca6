"""
Session Proxy Application Package

Stands in for the session authority's join / hasJoined endpoints, letting a
local account backend vouch for clients while profiles stay anchored to the
real authority.

Subpackages:
- accounts: credential -> profile name backends (static file, remote API)
- sessions: lock-guarded, file-backed record of recent joins
- upstream: connector that reaches the real authority past the DNS override
- handshake: join / hasJoined logic and routes
"""
