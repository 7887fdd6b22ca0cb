"""Tools package for the video knowledge hub MCP server.

Search tools live in ``knowledge_hub.tools.search`` and are registered with
the MCP server in ``knowledge_hub.server``.
"""
