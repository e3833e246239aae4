"""
Geolocation caching proxy package.

The proxy answers ip-api style lookups from a local record store and only
forwards misses upstream:
- Single lookups: store first, upstream single query on a miss
- Batch lookups: hits from the store, misses coalesced into one upstream call
- Persistence: optional JSON snapshot of the whole store
- Expiry: time-based only, swept periodically

Structure:
- app.main: FastAPI app, routes, startup/shutdown wiring.
- app.domain: Location model, field vocabulary and request validation.
- app.caching: Record store, field projection, snapshots and the reaper.
- app.resolver: Single lookup, batch coordinator and expiry policy.
- app.adapters: ip-api HTTP client and reverse name resolver.
"""
