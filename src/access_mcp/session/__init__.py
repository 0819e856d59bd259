"""Connection and session orchestration for one Access database.

Import :class:`access_mcp.session.manager.AccessSession` for the facade; the
submodules hold the individual components.
"""
