"""Link synchronizer — inject/eject external package trees into the monorepo.

- modes: link strategies and identity checks
- manifest: persisted record of injected destinations
- host: ignore file, alias table and host package.json mutations
- synchronizer: the inject/eject engine
"""
