"""
Helpdesk portal core.

The portal fronts a third-party ticketing API, providing:
- Caching: a volatile tier backed by a persistent store for ticket data
- Lifetimes: per-entity TTLs chosen by age and status
- Resilience: timeout-bounded, retrying requests
- Coalescing of concurrent reference-data fetches

Structure:
- app.main: Portal assembly.
- app.adapters: request gateway and ticketing API client.
- app.caching: cache store, storage backends, TTL policy, coalescer.
- app.domain: ticket and knowledge-base services, invalidation.
"""
