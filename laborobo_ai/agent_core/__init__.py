"""Agent core: tool gateway, permission and budget policy, and checkpointed workflows.

The agent core is written against repository Protocols and has no knowledge of
the HTTP server. Application wiring (see ``laborobo_ai.server.services``)
builds SQL repositories, a ``ToolRegistry`` and a ``ToolGateway`` and hands
them to workflows through ``WorkflowDeps``.
"""
