"""Dental PMS adapter: one interface over many practice management systems.

Architecture Overview
=====================

Callers (the voice receptionist, the HTTP API, sync jobs) talk to a single
``PMSAdapter`` interface.  The factory picks the vendor variant from an
office's ``pms_type``; nothing downstream branches on the vendor again.

Request path for one capability::

    adapter -> normalizer (domain -> vendor) -> transport -> vendor API
                                                   |  or, in mock mode,
                                                   +-> MockRouter / MockPMSStore
            <- normalizer (vendor -> domain) <------+

Key Design Decisions
--------------------
- **Mock fallback**: a tenant with missing live credentials is served by an
  in-process CareStack-shaped practice instead of failing.
- **Typed errors**: transport failures surface as ``dental_pms.errors``
  classes with user-facing messages; only single-entity lookups turn a 404
  into ``None``.
- **Single-shot transport**: retries belong to callers, and only for reads.
- **Per-adapter caches**: locations, operatories and providers are cached
  for five minutes inside each adapter instance.

Package Structure
-----------------
- ``dental_pms/config.py`` — Environment / SSM settings
- ``dental_pms/errors.py`` — Error taxonomy
- ``dental_pms/models.py`` — Vendor-neutral domain models (pydantic)
- ``dental_pms/offices.py`` — Office directory and per-office adapters
- ``dental_pms/adapters/`` — Capability interface, vendor variants, factory
- ``dental_pms/services/`` — Resolver, auth, transport, normalizer, cache,
  mock PMS, retry, audit, metrics
- ``dental_pms/api/`` — FastAPI routes and schemas
- ``dental_pms/server.py`` — FastAPI application
- ``dental_pms/main.py`` — Developer CLI
"""
