"""
Laborobo-AI Server Package.

This package exposes the agent runtime over HTTP: starting PM Copilot runs,
reading workflow state and deciding inbox approvals.

Subpackages:
    api: FastAPI route definitions and endpoint logic.
    core: Configuration, constants and database connections.
    exception_handlers: Mapping of domain errors and unhandled exceptions to responses.
    schemas: Pydantic schemas for API request/response validation.
    services: Service layer wiring repositories, gateway and workflows.
"""
