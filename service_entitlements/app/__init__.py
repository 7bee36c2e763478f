"""
Entitlements Service package for the talent marketplace.

Decides what each user may do according to their role tier. It provides:

- app.main: API surface for cascades, quota checks, profile state and navigation.
- app.tiers: Role tiers and the pure tier resolver.
- app.cascade: Company and academy tier cascades with per-member isolation.
- app.quota: Monthly application limits that fail open.
- app.profile: Profile state machine, disclosure and redirect decisions.
- app.persistence: Storage ports with PostgreSQL and in-memory adapters.
- app.cache: Redis-backed cache for configured limits.

Guidelines:
- Role storage is the only source of truth for a user's tier.
- A cascade never rolls back members that already succeeded.
- Quota checks never block a user because of an infrastructure failure.
"""
