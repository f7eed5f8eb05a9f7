"""
wow_tracker.providers: HTTP clients for the three upstream data sources.

Every client shares ``ProviderClient`` (serialized calls, inter-call delay,
advisory admission through the rate limit coordinator, quota header
handling, error mapping) and implements the ``CatalogSource`` capability
interface used by the raid sync.

Modules:
  errors      : ProviderError / ProviderAuthError.
  records     : Frozen, typed records parsed from provider JSON.
  base        : ProviderClient and the CatalogSource interface.
  warcraftlogs: Combat-log provider (GraphQL, OAuth client credentials).
  raiderio    : Dungeon-ranking provider (REST, optional API key).
  blizzard    : Character-profile provider (REST, OAuth client credentials).
"""
