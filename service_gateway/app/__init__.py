"""
API Gateway Service package for the Newsfeed Access Layer.

The gateway fronts client requests, enforcing:
- Rate limiting: fixed-window per-client budgets, in-process or in Redis
- Authentication: shared-secret bearer tokens verified locally
- Circuit-breaking and retries for resilient downstream calls

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP clients for the User and Post services.
- app.auth: Token verification.
- app.ratelimit: Fixed-window limiters.
- app.domain: Request gate, payload models, feed and profile aggregation.
"""
